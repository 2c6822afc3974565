"""Bounded walks up the base-policy chain.

Nothing stops a policy author from pointing a policy at itself or at one of its
own descendants, so every walk here carries a depth limit and a seen set.
"""

from __future__ import annotations

import logging
from typing import Iterator, Set

from .models import PolicyDocument

logger = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 15


def iter_ancestors(start: PolicyDocument, *, max_depth: int = MAX_CHAIN_DEPTH) -> Iterator[PolicyDocument]:
    """Yield ``start.base``, ``start.base.base``, ... until the chain ends, loops or gets too deep."""
    seen: Set[str] = {start.policy_id}
    current = start.base
    depth = 0
    while current is not None and depth < max_depth:
        if current.policy_id in seen:
            logger.debug("Base chain of %s loops back to %s", start.policy_id, current.policy_id)
            return
        yield current
        seen.add(current.policy_id)
        depth += 1
        current = current.base


def reaches(start: PolicyDocument, group_name: str, *, max_depth: int = MAX_CHAIN_DEPTH) -> bool:
    """True when an ancestor of ``start`` defines or inherits ``group_name``."""
    try:
        for ancestor in iter_ancestors(start, max_depth=max_depth):
            # Declared names cover ancestors the renumbering pass has not reached yet.
            if group_name in ancestor.inherited_group_names or group_name in ancestor.group_names:
                return True
    except Exception as exc:
        logger.warning("Could not walk the base chain of %s: %s", start.policy_id, exc)
    return False
