from __future__ import annotations

import logging

import pytest

from policykit.logs import log_group


def test_log_group_logs_title_and_failures(caplog):
    caplog.set_level(logging.INFO)
    log = logging.getLogger("policykit.test")
    with log_group("Uploading policy files...", log):
        log.info("inside")
    with pytest.raises(RuntimeError):
        with log_group("Renumbering steps in policies...", log):
            raise RuntimeError("boom")
    messages = [record.getMessage() for record in caplog.records]
    assert messages[:2] == ["Uploading policy files...", "inside"]
    assert messages[2] == "Renumbering steps in policies..."
    assert messages[-1].startswith("Renumbering steps in policies... failed after")
