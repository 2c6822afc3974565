from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .models import PolicyFile

logger = logging.getLogger(__name__)

POLICY_GLOB = "*.xml"


def _is_ignored(relative: Path, ignore: Optional[str]) -> bool:
    if not ignore:
        return False
    # Leading slash so "**/Folder/**" also matches a folder directly under the root.
    return fnmatch.fnmatch(f"/{relative.as_posix()}", ignore)


def discover_policy_files(root: Path | str, ignore: Optional[str] = None) -> List[Path]:
    """Return every ``*.xml`` file below ``root``, sorted, minus those matching ``ignore``."""
    root_path = Path(root)
    if not root_path.is_dir():
        logger.warning("Policy folder %s does not exist", root_path)
        return []
    found: List[Path] = []
    for path in sorted(root_path.rglob(POLICY_GLOB)):
        if not path.is_file():
            continue
        if _is_ignored(path.relative_to(root_path), ignore):
            logger.debug("Ignoring %s", path)
            continue
        found.append(path)
    return found


def sub_folder_of(root: Path, path: Path) -> Optional[str]:
    parent = path.parent.relative_to(root).as_posix()
    if parent in {"", "."}:
        return None
    return parent


def read_policy_files(root: Path | str, paths: Iterable[Path]) -> List[PolicyFile]:
    root_path = Path(root)
    files: List[PolicyFile] = []
    for path in paths:
        logger.info("Found: %s", path)
        try:
            data = path.read_text(encoding="utf-8-sig")
        except (UnicodeDecodeError, OSError) as exc:
            logger.warning("Could not read %s, skipping it: %s", path, exc)
            continue
        files.append(
            PolicyFile(
                file_name=path.name,
                data=data,
                sub_folder=sub_folder_of(root_path, path),
            )
        )
    return files
