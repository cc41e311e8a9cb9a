"""Typed representation of workflow graphs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class NodeType(str, Enum):
    """The closed set of node tags understood by the executor."""
    MOVE_TO_PAGE = "moveToPage"
    FILL_FIELD = "fillField"
    CLICK_BUTTON = "clickButton"
    SEND_FILE = "sendFile"
    CONDITIONAL = "conditional"
    QUESTION = "question"
    SEQUENCE = "sequence"
    FOR_EACH = "forEach"
    WAIT = "wait"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class CheckOperator(str, Enum):
    """Operators accepted by a question node's data check."""
    EQUALS = "equals"
    GREATER_THAN = "greaterThan"
    CONTAINS = "contains"


@dataclass(frozen=True)
class DataCheck:
    """Structured comparison of a context value against an expected value."""
    data_path: str
    operator: str
    expected_value: Any = None


@dataclass(frozen=True)
class Branches:
    """Yes/no continuations of a conditional or question node."""
    yes: Optional[Node] = None
    no: Optional[Node] = None


@dataclass(frozen=True)
class Node:
    """
    One instruction in a workflow graph.

    ``node_type`` keeps the wire tag as loaded so the validator can report
    unknown tags; only the fields relevant to that type are populated.
    """
    node_type: str
    id: Optional[str] = None
    next: Optional[Node] = None

    # moveToPage
    url: str = ""

    # fillField / clickButton / sendFile
    selector: str = ""
    value: str = ""
    file_path: str = ""

    # conditional / question
    condition_expression: str = ""
    branches: Optional[Branches] = None
    check: Optional[DataCheck] = None

    # sequence
    sequence: tuple[Node, ...] = field(default_factory=tuple)

    # forEach
    data_source: str = ""
    data_source_iterator_param: str = ""
    question_text: str = ""

    # wait (milliseconds)
    duration: int = 0

    @property
    def kind(self) -> NodeType:
        """The node's tag as a ``NodeType``; raises ValueError for unknown tags."""
        return NodeType(self.node_type)

    @property
    def label(self) -> str:
        """Short identifier for logs."""
        return f"{self.node_type}#{self.id}" if self.id else self.node_type


@dataclass(frozen=True)
class WorkflowMetadata:
    """Descriptive metadata of a workflow."""
    name: str = ""
    version: str = ""
    description: str = ""


@dataclass(frozen=True)
class Workflow:
    """Root container: the entry node plus metadata."""
    graph: Optional[Node]
    metadata: WorkflowMetadata = field(default_factory=WorkflowMetadata)
