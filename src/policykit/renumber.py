from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .chain import MAX_CHAIN_DEPTH, reaches
from .graph import PolicyGraph, load_policy_graph
from .models import PolicyDocument, PolicyFile, RenumberResult, VisitState

logger = logging.getLogger(__name__)


class StepRenumberer:
    """Rewrites OrchestrationStep ``Order`` values so every journey counts 1..N.

    Base policies are always handled before the policies that inherit from them,
    and a journey that a base policy also defines is left alone: there is no way
    to tell which of the two definitions the author meant to renumber.
    """

    def __init__(self, graph: PolicyGraph, *, max_depth: int = MAX_CHAIN_DEPTH):
        self.graph = graph
        self.max_depth = max_depth
        self.state: Dict[str, VisitState] = {doc.policy_id: VisitState.UNVISITED for doc in graph}
        self.changes: Dict[str, int] = {}

    def state_of(self, doc: PolicyDocument) -> VisitState:
        return self.state.get(doc.policy_id, VisitState.UNVISITED)

    def process(self, doc: PolicyDocument) -> int:
        """Renumber ``doc`` (after its unprocessed bases) and return its change count."""
        if self.state_of(doc) is VisitState.DONE:
            return self.changes.get(doc.policy_id, 0)
        chain = self._pending_chain(doc)
        for item in chain:
            self.state[item.policy_id] = VisitState.IN_PROGRESS
        for item in chain:
            self._renumber(item)
        return self.changes[doc.policy_id]

    def process_all(self) -> int:
        return sum(self.process(doc) for doc in self.graph)

    def _pending_chain(self, doc: PolicyDocument) -> List[PolicyDocument]:
        # doc plus its unprocessed ancestors, top-most ancestor first
        chain = [doc]
        seen = {doc.policy_id}
        current = doc.base
        while current is not None and self.state_of(current) is VisitState.UNVISITED:
            if current.policy_id in seen:
                logger.warning(
                    "Base chain of %s loops back to %s; treating %s as having no further bases",
                    doc.policy_id,
                    current.policy_id,
                    chain[-1].policy_id,
                )
                break
            if len(chain) > self.max_depth:
                logger.warning(
                    "Base chain of %s is deeper than %d policies; stopping at %s",
                    doc.policy_id,
                    self.max_depth,
                    chain[-1].policy_id,
                )
                break
            chain.append(current)
            seen.add(current.policy_id)
            current = current.base
        chain.reverse()
        return chain

    def _renumber(self, doc: PolicyDocument) -> int:
        base = doc.base
        if base is not None:
            doc.inherited_group_names.update(base.inherited_group_names)
        self.state[doc.policy_id] = VisitState.DONE

        changed = 0
        for group in doc.groups:
            doc.inherited_group_names.add(group.name)
            if base is not None and reaches(doc, group.name, max_depth=self.max_depth):
                logger.info(
                    "Skipped renumbering journey %s in %s because a base policy also defines it",
                    group.name,
                    doc.policy_id,
                )
                continue
            for position, step in enumerate(group.steps, start=1):
                order = step.order
                if order is None:
                    logger.warning(
                        "Step %d of journey %s in %s is missing the 'Order' attribute",
                        position,
                        group.name,
                        doc.policy_id,
                    )
                elif order != str(position):
                    step.order = position
                    changed += 1

        self.changes[doc.policy_id] = changed
        if changed:
            doc.raw_body = doc.to_xml()
            if doc.source is not None:
                doc.source.data = doc.raw_body
            logger.info("Renumbered %d steps in %s", changed, doc.policy_id)
        return changed


def renumber_graph(graph: PolicyGraph, *, max_depth: int = MAX_CHAIN_DEPTH) -> List[RenumberResult]:
    renumberer = StepRenumberer(graph, max_depth=max_depth)
    renumberer.process_all()
    return [
        RenumberResult(
            file_name=doc.file_name,
            policy_id=doc.policy_id,
            body=doc.raw_body,
            change_count=renumberer.changes.get(doc.policy_id, 0),
        )
        for doc in graph
    ]


def renumber_all(files: Iterable[PolicyFile], *, max_depth: int = MAX_CHAIN_DEPTH) -> List[RenumberResult]:
    """Renumber a family of policy files in place.

    Returns one result per policy that made it into the graph, in input order.
    Files that fail to parse or have no PolicyId are logged and left out.
    """
    graph = load_policy_graph(files)
    return renumber_graph(graph, max_depth=max_depth)
