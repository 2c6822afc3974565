from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple
from xml.etree.ElementTree import Element


class VisitState(enum.Enum):
    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass(slots=True)
class PolicyFile:
    """A policy file as read from disk; ``data`` is rewritten in place by renumbering."""

    file_name: str
    data: str
    sub_folder: Optional[str] = None

    @property
    def relative_path(self) -> str:
        if self.sub_folder:
            return f"{self.sub_folder}/{self.file_name}"
        return self.file_name


@dataclass(slots=True)
class PolicyStep:
    element: Element

    @property
    def order(self) -> Optional[str]:
        return self.element.get("Order")

    @order.setter
    def order(self, value: int | str) -> None:
        self.element.set("Order", str(value))


@dataclass(slots=True)
class SequenceGroup:
    name: str
    steps: List[PolicyStep] = field(default_factory=list)

    @property
    def orders(self) -> List[Optional[str]]:
        return [step.order for step in self.steps]


@dataclass(eq=False)
class PolicyDocument:
    policy_id: str
    root: Element
    raw_body: str
    base_policy_id: Optional[str] = None
    tenant_id: Optional[str] = None
    groups: List[SequenceGroup] = field(default_factory=list)
    file_name: Optional[str] = None
    prolog: str = ""
    namespaces: List[Tuple[str, str]] = field(default_factory=list)
    root_namespaces: List[Tuple[str, str]] = field(default_factory=list)
    source: Optional[PolicyFile] = None
    base: Optional["PolicyDocument"] = None
    inherited_group_names: Set[str] = field(default_factory=set)

    @property
    def group_names(self) -> Set[str]:
        return {group.name for group in self.groups}

    @property
    def label(self) -> str:
        return self.file_name or self.policy_id

    def to_xml(self) -> str:
        from .parser import serialize_policy

        return serialize_policy(self)

    def __repr__(self) -> str:
        base = self.base.policy_id if self.base is not None else self.base_policy_id
        return f"PolicyDocument(policy_id={self.policy_id!r}, base={base!r})"


@dataclass(slots=True)
class RenumberResult:
    file_name: Optional[str]
    policy_id: str
    body: str
    change_count: int
