from __future__ import annotations

import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Union

from .chain import MAX_CHAIN_DEPTH
from .exceptions import EmptyPolicySetError
from .models import PolicyDocument, VisitState

logger = logging.getLogger(__name__)


class UploadEntry(NamedTuple):
    policy_id: str
    base_policy_id: Optional[str] = None
    body: str = ""


Orderable = Union[PolicyDocument, UploadEntry]


def _as_orderable(item: Union[Orderable, Sequence[Optional[str]]]) -> Orderable:
    if isinstance(item, (PolicyDocument, UploadEntry)):
        return item
    return UploadEntry(*item)


class UploadQueue:
    """Builds an upload order in which every policy follows the base policy it inherits from."""

    def __init__(self, items: Iterable[Orderable], *, max_depth: int = MAX_CHAIN_DEPTH):
        self.max_depth = max_depth
        self.nodes: Dict[str, Orderable] = {}
        for item in items:
            if item.policy_id in self.nodes:
                logger.warning("Duplicate policy %s; the last one found will be uploaded", item.policy_id)
                del self.nodes[item.policy_id]
            self.nodes[item.policy_id] = item
        self.state: Dict[str, VisitState] = {pid: VisitState.UNVISITED for pid in self.nodes}
        self.queue: List[Orderable] = []

    def base_of(self, item: Orderable) -> Optional[Orderable]:
        if not item.base_policy_id:
            return None
        return self.nodes.get(item.base_policy_id)

    def enqueue(self, item: Orderable) -> None:
        if self.state.get(item.policy_id) is VisitState.DONE:
            return
        chain = [item]
        seen = {item.policy_id}
        base = self.base_of(item)
        while base is not None and self.state.get(base.policy_id, VisitState.UNVISITED) is VisitState.UNVISITED:
            if base.policy_id in seen:
                logger.warning(
                    "Base chain of %s loops back to %s; uploading %s without waiting on it",
                    item.policy_id,
                    base.policy_id,
                    chain[-1].policy_id,
                )
                break
            if len(chain) > self.max_depth:
                logger.warning(
                    "Base chain of %s is deeper than %d policies; stopping at %s",
                    item.policy_id,
                    self.max_depth,
                    chain[-1].policy_id,
                )
                break
            chain.append(base)
            seen.add(base.policy_id)
            base = self.base_of(base)
        for pending in chain:
            self.state[pending.policy_id] = VisitState.IN_PROGRESS
        for pending in reversed(chain):
            self.queue.append(pending)
            self.state[pending.policy_id] = VisitState.DONE

    def resolve(self) -> List[Orderable]:
        for item in list(self.nodes.values()):
            self.enqueue(item)
        return list(self.queue)


def order_policies(items: Iterable[Orderable], *, max_depth: int = MAX_CHAIN_DEPTH) -> List[Orderable]:
    return UploadQueue(items, max_depth=max_depth).resolve()


def resolve_upload_order(
    entries: Iterable[Union[Orderable, Sequence[Optional[str]]]],
    *,
    max_depth: int = MAX_CHAIN_DEPTH,
) -> List[str]:
    """Return policy ids ordered so each base policy comes before the policies built on it.

    ``entries`` holds :class:`PolicyDocument` objects or ``(policy_id, base_policy_id, body)``
    tuples. A base that is not part of ``entries`` is ignored.
    """
    items = [_as_orderable(entry) for entry in entries]
    if not items:
        raise EmptyPolicySetError("No policies were supplied to order for upload")
    return [item.policy_id for item in order_policies(items, max_depth=max_depth)]
