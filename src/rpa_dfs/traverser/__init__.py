"""Workflow interpreter: schema, context, resolver, parser and executor."""

from .types import Node, NodeType, Branches, DataCheck, CheckOperator, Workflow, WorkflowMetadata
from .context import UserContext
from .selectors import SelectorRegistry, DEFAULT_SELECTORS
from .resolver import TemplateResolver, Diagnostic
from .parser import WorkflowParser, validate_workflow, validate_file
from .executor import Executor, AutomationBackend
from .traverser import Traverser

__all__ = [
    "Node",
    "NodeType",
    "Branches",
    "DataCheck",
    "CheckOperator",
    "Workflow",
    "WorkflowMetadata",
    "UserContext",
    "SelectorRegistry",
    "DEFAULT_SELECTORS",
    "TemplateResolver",
    "Diagnostic",
    "WorkflowParser",
    "validate_workflow",
    "validate_file",
    "Executor",
    "AutomationBackend",
    "Traverser",
]
