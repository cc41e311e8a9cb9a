"""Workflow executor: walks a validated graph and drives the automation backend."""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

import structlog

from ..core.errors import (
    BackendActionError,
    FrameworkError,
    InvalidNodeTypeError,
    IteratorSourceError,
)
from .context import UserContext
from .resolver import TemplateResolver
from .selectors import SelectorRegistry
from .types import Node, NodeType, Workflow

logger = structlog.get_logger()


@runtime_checkable
class AutomationBackend(Protocol):
    """
    Capabilities the executor needs from a browser driver.

    Each action raises on failure. ``close`` must be idempotent.
    """

    async def navigate_to(self, url: str) -> None:
        ...

    async def fill_field(self, selector: str, value: str) -> None:
        ...

    async def click_element(self, selector: str) -> None:
        ...

    async def send_file(self, selector: str, file_path: str) -> None:
        ...

    async def close(self) -> None:
        ...


# A node handler performs the node's effect and returns the node to continue with
NodeHandler = Callable[[Node], Awaitable[Optional[Node]]]


class Executor:
    """
    Executes one workflow run against one backend.

    Nodes run strictly one after another. ``next`` continuations are
    followed iteratively; branches, sequence children and loop bodies are
    executed as nested chains. The backend is closed exactly once when the
    run ends, whether it succeeded or not.
    """

    def __init__(
        self,
        workflow: Workflow,
        context: UserContext,
        backend: AutomationBackend,
        selectors: Optional[SelectorRegistry] = None,
        dotted_paths: bool = False,
    ):
        self.workflow = workflow
        self.context = context
        self.backend = backend
        # Loop bindings go into the context the templates are resolved from
        self.resolver = TemplateResolver(
            context,
            selectors=selectors,
            dotted_paths=dotted_paths,
        )

        self.actions_executed = 0
        self._released = False

        self._handlers: dict[NodeType, NodeHandler] = {
            NodeType.MOVE_TO_PAGE: self._execute_move_to_page,
            NodeType.FILL_FIELD: self._execute_fill_field,
            NodeType.CLICK_BUTTON: self._execute_click_button,
            NodeType.SEND_FILE: self._execute_send_file,
            NodeType.CONDITIONAL: self._execute_conditional,
            NodeType.QUESTION: self._execute_question,
            NodeType.SEQUENCE: self._execute_sequence,
            NodeType.FOR_EACH: self._execute_for_each,
            NodeType.WAIT: self._execute_wait,
        }

    async def execute(self) -> None:
        """
        Run the workflow from its root.

        Raises:
            BackendActionError: an effectful node failed.
            IteratorSourceError: a forEach source is not a list.
        """
        metadata = self.workflow.metadata
        logger.info(
            "workflow_execution_started",
            name=metadata.name,
            version=metadata.version,
            description=metadata.description or None,
        )
        start_time = time.monotonic()

        try:
            await self._execute_chain(self.workflow.graph)
        except FrameworkError as e:
            logger.error(
                "workflow_execution_failed",
                name=metadata.name,
                error=e.message,
                actions=self.actions_executed,
            )
            raise
        finally:
            await self._release_backend()

        logger.info(
            "workflow_execution_completed",
            name=metadata.name,
            actions=self.actions_executed,
            duration_ms=round((time.monotonic() - start_time) * 1000, 1),
        )

    async def _execute_chain(self, node: Optional[Node]) -> None:
        """Execute ``node`` and every continuation it hands back, until None."""
        while node is not None:
            try:
                kind = node.kind
            except ValueError:
                raise InvalidNodeTypeError(
                    f"unknown node type: {node.node_type!r}",
                    node_type=node.node_type,
                ) from None
            logger.debug("node_executing", node=node.label)
            node = await self._handlers[kind](node)

    async def _call_backend(
        self,
        node: Node,
        action: Callable[..., Awaitable[None]],
        *args: str,
    ) -> None:
        """Invoke a backend action, wrapping any failure with the node type."""
        try:
            await action(*args)
        except Exception as e:
            raise BackendActionError(
                f"{node.node_type} failed: {e}",
                node_type=node.node_type,
                context={"node_id": node.id, "args": list(args)},
            ) from e
        self.actions_executed += 1

    async def _release_backend(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self.backend.close()
        except Exception as e:
            logger.warning("backend_close_failed", error=str(e))

    # ==================== Actions ====================

    async def _execute_move_to_page(self, node: Node) -> Optional[Node]:
        url = self.resolver.resolve(node.url)
        await self._call_backend(node, self.backend.navigate_to, url)
        return node.next

    async def _execute_fill_field(self, node: Node) -> Optional[Node]:
        selector = self.resolver.resolve_selector(node.selector)
        value = self.resolver.resolve(node.value)
        await self._call_backend(node, self.backend.fill_field, selector, value)
        return node.next

    async def _execute_click_button(self, node: Node) -> Optional[Node]:
        selector = self.resolver.resolve_selector(node.selector)
        await self._call_backend(node, self.backend.click_element, selector)
        return node.next

    async def _execute_send_file(self, node: Node) -> Optional[Node]:
        selector = self.resolver.resolve_selector(node.selector)
        file_path = self.resolver.resolve(node.file_path)
        await self._call_backend(node, self.backend.send_file, selector, file_path)
        return node.next

    async def _execute_wait(self, node: Node) -> Optional[Node]:
        logger.info("wait_started", duration_ms=node.duration)
        await asyncio.sleep(node.duration / 1000)
        return node.next

    # ==================== Control flow ====================

    async def _execute_conditional(self, node: Node) -> Optional[Node]:
        result = self.resolver.evaluate_condition(node.condition_expression)
        return self._take_branch(node, result, expression=node.condition_expression)

    async def _execute_question(self, node: Node) -> Optional[Node]:
        result = self.resolver.evaluate_data_check(node.check)
        return self._take_branch(
            node,
            result,
            data_path=node.check.data_path if node.check else None,
        )

    def _take_branch(self, node: Node, result: bool, **details) -> Optional[Node]:
        branch = "yes" if result else "no"
        logger.info("branch_taken", node=node.label, branch=branch, **details)
        if node.branches is None:
            return None
        return node.branches.yes if result else node.branches.no

    async def _execute_sequence(self, node: Node) -> Optional[Node]:
        total = len(node.sequence)
        logger.info("sequence_started", node=node.label, items=total)

        for i, child in enumerate(node.sequence, start=1):
            logger.debug("sequence_item_executing", item=i, total=total)
            try:
                await self._execute_chain(child)
            except FrameworkError as e:
                raise e.wrapped(f"sequence item {i} failed") from e

        logger.info("sequence_completed", node=node.label)
        return node.next

    async def _execute_for_each(self, node: Node) -> Optional[Node]:
        """
        Run ``next`` once per element of the list bound at the iterator key.

        The key is rebound to each element in turn and set to None when the
        loop ends. The loop terminates the path: nothing runs after it.
        """
        param = node.data_source_iterator_param
        found, items = self.context.lookup(param)
        if not found:
            raise IteratorSourceError(
                f"dataSourceIteratorParam not found: {param}",
                param=param,
            )
        if not isinstance(items, list):
            raise IteratorSourceError(
                f"dataSourceIteratorParam {param} is not a list: {type(items).__name__}",
                param=param,
            )

        logger.info("for_each_started", node=node.label, param=param, items=len(items))
        try:
            for i, item in enumerate(items):
                self.context.set(param, item)
                try:
                    await self._execute_chain(node.next)
                except FrameworkError as e:
                    raise e.wrapped(f"forEach item {i} failed") from e
        finally:
            self.context.clear(param)

        logger.info("for_each_completed", node=node.label, iterations=len(items))
        return None
