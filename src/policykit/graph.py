from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional

from .exceptions import MissingPolicyIdError, PolicyParseError
from .models import PolicyDocument, PolicyFile
from .parser import parse_policy_file

logger = logging.getLogger(__name__)


class PolicyGraph:
    """Policies keyed by PolicyId, each linked to its base policy when the base is in the set."""

    def __init__(self, documents: Iterable[PolicyDocument]):
        self.nodes: Dict[str, PolicyDocument] = {}
        for doc in documents:
            previous = self.nodes.get(doc.policy_id)
            if previous is not None and previous is not doc:
                logger.warning(
                    "Duplicate policy %s in %s replaces the one from %s",
                    doc.policy_id,
                    doc.label,
                    previous.label,
                )
                # Keep insertion order stable for the replacement.
                del self.nodes[doc.policy_id]
            self.nodes[doc.policy_id] = doc
        self.link_bases()

    def link_bases(self) -> None:
        for doc in self.nodes.values():
            # An unresolved base may live in another tenant or repo; treat it as no base.
            doc.base = self.nodes.get(doc.base_policy_id) if doc.base_policy_id else None

    def get(self, policy_id: str) -> Optional[PolicyDocument]:
        return self.nodes.get(policy_id)

    def resolve_base(self, doc: PolicyDocument) -> Optional[PolicyDocument]:
        if doc.base is not None:
            return doc.base
        if doc.base_policy_id:
            return self.nodes.get(doc.base_policy_id)
        return None

    def __contains__(self, policy_id: object) -> bool:
        return policy_id in self.nodes

    def __iter__(self) -> Iterator[PolicyDocument]:
        return iter(list(self.nodes.values()))

    def __len__(self) -> int:
        return len(self.nodes)


def build_policy_graph(documents: Iterable[PolicyDocument]) -> PolicyGraph:
    return PolicyGraph(documents)


def load_policy_graph(files: Iterable[PolicyFile]) -> PolicyGraph:
    """Parse ``files`` and build a graph from the ones that carry a PolicyId.

    Unparseable files and files without a PolicyId are logged once each and left out.
    """
    documents: List[PolicyDocument] = []
    for policy_file in files:
        try:
            documents.append(parse_policy_file(policy_file))
        except PolicyParseError as exc:
            logger.warning("%s has invalid XML, skipping it: %s", policy_file.file_name, exc)
        except MissingPolicyIdError:
            logger.warning("%s has no PolicyId, skipping it", policy_file.file_name)
    return build_policy_graph(documents)
