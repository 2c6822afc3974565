from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

import requests

from .chain import MAX_CHAIN_DEPTH
from .config import Settings, get_settings
from .discovery import discover_policy_files
from .exceptions import EmptyPolicySetError, MissingPolicyIdError, PolicyParseError, PolicyUploadError
from .logs import log_group
from .models import PolicyDocument
from .ordering import order_policies
from .parser import parse_policy

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    def get_access_token(self) -> str: ...


class GraphPolicyClient:
    """Uploads policy XML to the Microsoft Graph ``trustFramework/policies`` endpoint."""

    def __init__(
        self,
        token_provider: TokenProvider,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or get_settings()
        self.token_provider = token_provider
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token_provider.get_access_token()}",
            "Content-Type": "application/xml",
        }

    def policy_url(self, policy_id: str) -> str:
        return f"{self.settings.graph_base_url.rstrip('/')}/trustFramework/policies/{policy_id}/$value"

    def put_policy(self, policy_id: str, body: str) -> None:
        resp = self.session.put(
            self.policy_url(policy_id),
            headers=self._headers(),
            data=body.encode("utf-8"),
            timeout=self.settings.request_timeout_s,
        )
        if resp.status_code >= 400:
            raise PolicyUploadError(policy_id, resp.status_code, resp.text[:500])


def load_upload_documents(paths: Iterable[Path]) -> List[PolicyDocument]:
    documents: List[PolicyDocument] = []
    for path in paths:
        logger.info("Processing %s", path)
        try:
            body = path.read_text(encoding="utf-8-sig")
        except (UnicodeDecodeError, OSError) as exc:
            logger.warning("Could not read %s, skipping it: %s", path, exc)
            continue
        try:
            doc = parse_policy(body, path.name)
        except PolicyParseError as exc:
            logger.warning("%s is not a valid B2C policy file, skipping it: %s", path, exc)
            continue
        except MissingPolicyIdError:
            logger.info("Skipping %s since PolicyId is not present", path)
            continue
        if not doc.tenant_id:
            logger.info("Skipping %s since TenantId is not present", path)
            continue
        logger.info("Found policy %s from tenant %s", doc.policy_id, doc.tenant_id)
        if doc.base_policy_id:
            logger.info("Policy %s inherits base policy %s", doc.policy_id, doc.base_policy_id)
        documents.append(doc)
    return documents


def upload_policies(
    root: Path | str,
    client: Optional[GraphPolicyClient],
    *,
    max_depth: int = MAX_CHAIN_DEPTH,
    dry_run: bool = False,
) -> List[str]:
    """Upload every policy below ``root``, base policies first; returns the ids in upload order."""
    root_path = Path(root)
    with log_group(f"Searching policy files matching: {root_path}/**/*.xml", logger):
        documents = load_upload_documents(discover_policy_files(root_path))
    if not documents:
        raise EmptyPolicySetError(f"No B2C policies found in {root_path}")

    queue = order_policies(documents, max_depth=max_depth)
    uploaded: List[str] = []
    with log_group("Uploading policy files...", logger):
        for doc in queue:
            if dry_run or client is None:
                logger.info("Would upload %s", doc.policy_id)
            else:
                logger.info("Uploading %s...", doc.policy_id)
                client.put_policy(doc.policy_id, doc.raw_body)
            uploaded.append(doc.policy_id)
    return uploaded
