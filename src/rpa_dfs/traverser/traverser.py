"""High-level API: load a workflow, run it, record the outcome."""

import time
from pathlib import Path
from typing import Optional, Union

import structlog

from ..core.config import EngineConfig
from ..core.errors import FrameworkError
from ..core.results import RunResult, RunStore
from .context import UserContext
from .executor import AutomationBackend, Executor
from .parser import WorkflowParser
from .selectors import SelectorRegistry
from .types import Workflow

logger = structlog.get_logger()


class Traverser:
    """
    Ties the parser, executor and an automation backend together.

    Load failures raise before anything runs. Run failures are recorded
    in the run store (when one is configured) and then re-raised.
    """

    def __init__(
        self,
        backend: AutomationBackend,
        parser: Optional[WorkflowParser] = None,
        config: Optional[EngineConfig] = None,
        store: Optional[RunStore] = None,
    ):
        self.backend = backend
        self.parser = parser or WorkflowParser()
        self.config = config or EngineConfig()
        self.store = store
        self.executor: Optional[Executor] = None
        self.last_result: Optional[RunResult] = None

    async def execute_workflow(
        self,
        workflow_path: Union[str, Path],
        context_path: Union[str, Path],
    ) -> RunResult:
        """Run a workflow file with user data from a context file."""
        context = self.parser.load_context_file(context_path)
        return await self.execute_workflow_with_context(workflow_path, context)

    async def execute_workflow_with_context(
        self,
        workflow_path: Union[str, Path],
        context: UserContext,
    ) -> RunResult:
        """Run a workflow file with an already built context."""
        workflow = self.parser.load_file(workflow_path)
        return await self.execute(workflow, context)

    async def execute(self, workflow: Workflow, context: UserContext) -> RunResult:
        """Run a loaded workflow."""
        resolver_config = self.config.resolver
        self.executor = Executor(
            workflow,
            context,
            self.backend,
            selectors=SelectorRegistry(resolver_config.selectors),
            dotted_paths=resolver_config.dotted_paths,
        )

        result = RunResult(
            workflow_name=workflow.metadata.name,
            workflow_version=workflow.metadata.version,
            success=False,
        )
        start_time = time.monotonic()
        failure: Optional[FrameworkError] = None

        try:
            await self.executor.execute()
            result.success = True
        except FrameworkError as e:
            failure = e
            result.error = e.to_dict()

        result.finished_at = time.time()
        result.duration_ms = (time.monotonic() - start_time) * 1000
        result.actions = self.executor.actions_executed
        result.diagnostics = [
            {"kind": d.kind, "detail": d.detail}
            for d in self.executor.resolver.diagnostics
        ]

        self.last_result = result
        if self.store is not None:
            await self.store.save_run(result)

        logger.info(
            "workflow_run_recorded",
            run_id=result.run_id,
            success=result.success,
            actions=result.actions,
            diagnostics=len(result.diagnostics),
        )

        if failure is not None:
            raise failure
        return result

    async def close(self) -> None:
        """Release the backend; safe to call after a run already did."""
        await self.backend.close()
