"""Workflow document loading and structural validation."""

import json
from pathlib import Path
from typing import Any, Optional, Union

import jsonschema
from jsonschema.exceptions import best_match
import structlog

from ..core.errors import (
    ConfigError,
    InvalidNodeTypeError,
    MissingFieldError,
    WorkflowValidationError,
)
from .context import UserContext
from .types import Branches, DataCheck, Node, NodeType, Workflow, WorkflowMetadata

logger = structlog.get_logger()


_STRING = {"type": ["string", "null"]}
_NODE_REF = {"type": ["object", "null"]}

# Shape of the document root. Nodes are checked one at a time by NODE_SCHEMA
# while the graph is walked, so deep chains never recurse inside jsonschema.
DOCUMENT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "graph": _NODE_REF,
        "metadata": {
            "type": ["object", "null"],
            "properties": {
                "name": _STRING,
                "version": _STRING,
                "description": _STRING,
            },
        },
    },
}

# Field types of a single node; required fields are checked per node type
NODE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "nodeType": _STRING,
        "id": _STRING,
        "next": _NODE_REF,
        "url": _STRING,
        "selector": _STRING,
        "value": _STRING,
        "filePath": _STRING,
        "conditionExpression": _STRING,
        "branches": {
            "type": ["object", "null"],
            "properties": {"yes": _NODE_REF, "no": _NODE_REF},
        },
        "check": {
            "type": ["object", "null"],
            "properties": {"dataPath": _STRING, "operator": _STRING},
        },
        "sequence": {"type": ["array", "null"], "items": {"type": "object"}},
        "dataSource": _STRING,
        "dataSourceIteratorParam": _STRING,
        "questionText": _STRING,
        "duration": {"type": ["integer", "null"]},
    },
}

_document_validator = jsonschema.Draft7Validator(DOCUMENT_SCHEMA)
_node_validator = jsonschema.Draft7Validator(NODE_SCHEMA)


def _first_schema_error(validator: jsonschema.Draft7Validator, instance: Any):
    return best_match(validator.iter_errors(instance))


class WorkflowParser:
    """Loads workflow and context documents and validates workflows."""

    # ==================== Workflows ====================

    def load(self, raw: Union[bytes, str]) -> Workflow:
        """
        Decode a workflow document and validate it.

        Raises:
            WorkflowValidationError: the payload is not valid JSON, has the
                wrong shape, or any node breaks its type's requirements.
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise WorkflowValidationError(f"workflow is not valid UTF-8: {e}")

        # Branches and sequence children nest on the call stack
        try:
            document = json.loads(raw)
            return self._build(document)
        except json.JSONDecodeError as e:
            raise WorkflowValidationError(f"failed to parse workflow JSON: {e}")
        except RecursionError:
            raise WorkflowValidationError("workflow document is nested too deeply") from None

    def _build(self, document: Any) -> Workflow:
        error = _first_schema_error(_document_validator, document)
        if error is not None:
            path = tuple(str(p) for p in error.absolute_path)
            location = ".".join(path) or "document"
            raise WorkflowValidationError(f"{location}: {error.message}", path=path)

        metadata_raw = document.get("metadata") or {}
        metadata = WorkflowMetadata(
            name=metadata_raw.get("name") or "",
            version=metadata_raw.get("version") or "",
            description=metadata_raw.get("description") or "",
        )

        graph_raw = document.get("graph")
        graph = self._decode_chain(graph_raw, ("graph",), []) if graph_raw is not None else None

        workflow = Workflow(graph=graph, metadata=metadata)
        validate_workflow(workflow)
        return workflow

    def load_file(self, workflow_path: Union[str, Path]) -> Workflow:
        """Read and load a workflow file."""
        path = Path(workflow_path)
        logger.info("workflow_loading", path=str(path))

        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.error("workflow_read_failed", path=str(path), error=str(e))
            raise ConfigError(f"failed to read workflow file: {e}", config_path=str(path))

        try:
            workflow = self.load(raw)
        except WorkflowValidationError as e:
            logger.error("workflow_validation_failed", path=str(path), error=e.message)
            raise

        logger.info(
            "workflow_loaded",
            name=workflow.metadata.name,
            version=workflow.metadata.version,
        )
        return workflow

    def _decode_chain(
        self,
        raw: dict[str, Any],
        path: tuple[str, ...],
        trail: list[str],
    ) -> Node:
        """Decode a node and its whole ``next`` chain, tail first."""
        chain: list[tuple[dict[str, Any], tuple[str, ...]]] = []
        current: Optional[dict[str, Any]] = raw
        while current is not None:
            self._check_shape(current, path, trail)
            chain.append((current, path))
            current = current.get("next")
            path = path + ("next",)

        node: Optional[Node] = None
        for node_raw, node_path in reversed(chain):
            node = self._decode_node(node_raw, node_path, trail, node)
        return node

    def _check_shape(self, raw: dict[str, Any], path: tuple[str, ...], trail: list[str]) -> None:
        error = _first_schema_error(_node_validator, raw)
        if error is None:
            return
        field_path = tuple(str(p) for p in error.absolute_path)
        location = ".".join(path + field_path)
        raise WorkflowValidationError(
            _prefixed(trail, f"{location}: {error.message}"),
            path=path + field_path,
        )

    def _decode_node(
        self,
        raw: dict[str, Any],
        path: tuple[str, ...],
        trail: list[str],
        next_node: Optional[Node],
    ) -> Node:
        node_type = raw.get("nodeType") or ""

        branches = None
        branches_raw = raw.get("branches")
        if branches_raw is not None:
            arms = {}
            for arm in ("yes", "no"):
                arm_raw = branches_raw.get(arm)
                arms[arm] = (
                    self._decode_chain(
                        arm_raw,
                        path + (f"branches.{arm}",),
                        trail + [f"{node_type} {arm} branch"],
                    )
                    if arm_raw is not None
                    else None
                )
            branches = Branches(yes=arms["yes"], no=arms["no"])

        check = None
        check_raw = raw.get("check")
        if check_raw is not None:
            check = DataCheck(
                data_path=check_raw.get("dataPath") or "",
                operator=check_raw.get("operator") or "",
                expected_value=check_raw.get("expectedValue"),
            )

        sequence = tuple(
            self._decode_chain(
                child,
                path + (f"sequence[{i}]",),
                trail + [f"sequence child {i}"],
            )
            for i, child in enumerate(raw.get("sequence") or ())
        )

        return Node(
            node_type=node_type,
            id=raw.get("id"),
            next=next_node,
            url=raw.get("url") or "",
            selector=raw.get("selector") or "",
            value=raw.get("value") or "",
            file_path=raw.get("filePath") or "",
            condition_expression=raw.get("conditionExpression") or "",
            branches=branches,
            check=check,
            sequence=sequence,
            data_source=raw.get("dataSource") or "",
            data_source_iterator_param=raw.get("dataSourceIteratorParam") or "",
            question_text=raw.get("questionText") or "",
            duration=int(raw.get("duration") or 0),
        )

    # ==================== Contexts ====================

    def load_context(self, raw: Union[bytes, str]) -> UserContext:
        """Build a context from a JSON object document."""
        try:
            return UserContext.from_json(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise ConfigError(f"failed to parse context JSON: {e}")

    def load_context_file(self, context_path: Union[str, Path]) -> UserContext:
        """Read a context file."""
        path = Path(context_path)
        logger.info("context_loading", path=str(path))

        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.error("context_read_failed", path=str(path), error=str(e))
            raise ConfigError(f"failed to read context file: {e}", config_path=str(path))

        try:
            context = self.load_context(raw)
        except ConfigError as e:
            e.context["config_path"] = str(path)
            logger.error("context_parse_failed", path=str(path), error=e.message)
            raise

        logger.info("context_loaded", keys=len(context))
        return context


# ==================== Validation ====================

_REQUIRED_STRINGS: dict[NodeType, tuple[str, ...]] = {
    NodeType.MOVE_TO_PAGE: ("url",),
    NodeType.FILL_FIELD: ("selector", "value"),
    NodeType.CLICK_BUTTON: ("selector",),
    NodeType.SEND_FILE: ("selector", "file_path"),
    NodeType.CONDITIONAL: ("condition_expression",),
    NodeType.FOR_EACH: ("data_source_iterator_param",),
}

_WIRE_NAMES = {
    "url": "url",
    "selector": "selector",
    "value": "value",
    "file_path": "filePath",
    "condition_expression": "conditionExpression",
    "data_source_iterator_param": "dataSourceIteratorParam",
    "branches": "branches",
    "check": "check",
}


def _prefixed(trail: list[str], message: str) -> str:
    return ": ".join(trail + [message])


def validate_workflow(workflow: Workflow) -> None:
    """
    Check a workflow graph before execution.

    Every node reachable through ``next``, branch arms and sequence children
    must carry a known type and that type's required fields. The first
    problem found is raised with its structural path.
    """
    if workflow.graph is None:
        raise WorkflowValidationError("workflow must have a graph", path=("graph",))
    _validate_chain(workflow.graph, ("graph",), [])


def validate_file(workflow_path: Union[str, Path]) -> Workflow:
    """Load a workflow file only to validate it."""
    return WorkflowParser().load_file(workflow_path)


def _validate_chain(node: Optional[Node], path: tuple[str, ...], trail: list[str]) -> None:
    while node is not None:
        _validate_node(node, path, trail)
        node = node.next
        path = path + ("next",)


def _validate_node(node: Node, path: tuple[str, ...], trail: list[str]) -> None:
    if node.node_type not in NodeType.values():
        raise InvalidNodeTypeError(
            _prefixed(trail, f"invalid node type: {node.node_type!r}"),
            node_type=node.node_type,
            path=path,
        )

    kind = node.kind
    required = [
        attr for attr in _REQUIRED_STRINGS.get(kind, ())
        if not getattr(node, attr)
    ]
    if kind in (NodeType.CONDITIONAL, NodeType.QUESTION) and node.branches is None:
        required.append("branches")
    if kind is NodeType.QUESTION and node.check is None:
        required.insert(0, "check")

    if required:
        names = [_WIRE_NAMES[attr] for attr in required]
        raise MissingFieldError(
            _prefixed(trail, f"{node.node_type} node requires {' and '.join(names)}"),
            node_type=node.node_type,
            fields=tuple(names),
            path=path,
        )

    if kind is NodeType.WAIT and node.duration <= 0:
        raise MissingFieldError(
            _prefixed(trail, f"wait node requires positive duration, got {node.duration}"),
            node_type=node.node_type,
            fields=("duration",),
            path=path,
        )

    if kind is NodeType.SEQUENCE:
        if not node.sequence:
            raise MissingFieldError(
                _prefixed(trail, "sequence node requires at least one child node"),
                node_type=node.node_type,
                fields=("sequence",),
                path=path,
            )
        for i, child in enumerate(node.sequence):
            _validate_chain(child, path + (f"sequence[{i}]",), trail + [f"sequence child {i}"])

    if kind in (NodeType.CONDITIONAL, NodeType.QUESTION):
        for arm in ("yes", "no"):
            _validate_chain(
                getattr(node.branches, arm),
                path + (f"branches.{arm}",),
                trail + [f"{node.node_type} {arm} branch"],
            )
