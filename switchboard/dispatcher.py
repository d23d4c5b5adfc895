"""Request dispatch and startup initialization.

Dispatch of one request walks a fixed sequence of stages::

    IDLE -> RESOLVE -> AUTHORIZE -> CHECK_DEPENDENCIES -> EXECUTE -> RESPOND

Any stage can short-circuit to RESPOND: an unmatched command yields no
response at all, a denial yields the list of reasons, a failed
dependency yields "dependency unavailable", and any unexpected error
yields a generic error response. Nothing raised while handling a request
escapes ``handle``.

Startup initialization resolves each enabled root's dependencies and
runs its initializer once. A root whose dependencies fail stays
uninitialized; a root whose initializer fails is disabled for good.
Neither affects the other roots.

Key classes:
    Dispatcher: Owns a CommandTree and runs requests against it.
    DispatchStage: Stages of a single request.
"""

import asyncio
import uuid
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

import structlog

from .arguments import parse_arguments, usage_line
from .context import RequestContext
from .dependency import Failed
from .exceptions import ArgumentError, ExecutionError, InitializationError
from .help import help_for_node
from .permissions import check_permissions
from .resolver import Resolution, resolve
from .responses import Response
from .tree import CommandNode, CommandTree, RootCommand

logger = structlog.get_logger("switchboard.dispatch")

DEFAULT_EXECUTION_TIMEOUT = 30.0
DEFAULT_INITIALIZATION_TIMEOUT = 60.0


class DispatchStage(str, Enum):
    IDLE = "idle"
    RESOLVE = "resolve"
    AUTHORIZE = "authorize"
    CHECK_DEPENDENCIES = "check_dependencies"
    EXECUTE = "execute"
    RESPOND = "respond"


class Dispatcher:
    """Runs requests against a command tree.

    Unrelated requests are not serialized; ``handle`` may be awaited
    concurrently from many tasks. The tree must not be mutated once
    dispatch begins.

    Args:
        tree: The command tree to dispatch into.
        execution_timeout: Seconds an executor may run before the
            request is answered with an error.
        initialization_timeout: Seconds a root initializer may run
            before the root is disabled.
    """

    def __init__(
        self,
        tree: CommandTree,
        execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT,
        initialization_timeout: Optional[float] = DEFAULT_INITIALIZATION_TIMEOUT,
    ):
        self.tree = tree
        self.execution_timeout = execution_timeout
        self.initialization_timeout = initialization_timeout
        self._initializations: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_config(cls, tree: CommandTree, config) -> "Dispatcher":
        return cls(
            tree,
            execution_timeout=config.execution_timeout,
            initialization_timeout=config.initialization_timeout,
        )

    # --- Per-request dispatch ---

    async def handle(
        self, tokens: Sequence[str], context: RequestContext
    ) -> Optional[Response]:
        """Resolve, authorize, check dependencies, execute.

        Returns:
            The response to send, or None when there is nothing to say
            (unmatched input, disabled command, or an executor that
            returned nothing).
        """
        stage = DispatchStage.IDLE
        resolution: Optional[Resolution] = None
        try:
            stage = DispatchStage.RESOLVE
            resolution = resolve(self.tree, tokens)
            node = resolution.node
            if node is None:
                return None
            if not node.root.enabled:
                logger.debug("command_disabled", command=node.qualified_name)
                return None

            stage = DispatchStage.AUTHORIZE
            reasons = check_permissions(resolution.path, context)
            if reasons:
                return Response.denied(reasons)

            if node.has_children:
                return help_for_node(node, resolution.command_used)

            stage = DispatchStage.CHECK_DEPENDENCIES
            unavailable = await self._first_failed_dependency(node)
            if unavailable is not None:
                return Response.unavailable(unavailable)

            stage = DispatchStage.EXECUTE
            try:
                arguments = parse_arguments(node.options, resolution.args)
            except ArgumentError as e:
                return Response.usage(
                    e.message, usage_line(resolution.command_used, node.options)
                )
            result = await self._run_executor(node, arguments, context)

            stage = DispatchStage.RESPOND
            return self._as_response(result)
        except Exception as e:
            return self._error_response(e, stage, resolution, context)

    async def _run_executor(
        self, node: CommandNode, arguments, context: RequestContext
    ) -> Union[Response, str, None]:
        """Run the executor in its own task, bounded by the execution timeout.

        A cancellation that starts inside the executor is reported as an
        ExecutionError. Cancelling the dispatching task still propagates,
        after cancelling the executor.
        """
        task = asyncio.ensure_future(node.executor(arguments, context))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.execution_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            raise asyncio.TimeoutError()
        if task.cancelled():
            raise ExecutionError(
                "Executor was cancelled", command=node.qualified_name
            )
        return task.result()

    async def _first_failed_dependency(self, node: CommandNode) -> Optional[str]:
        # resolve() returns the cached outcome; failures are not retried
        for dependency in node.dependencies:
            outcome = await dependency.resolve()
            if isinstance(outcome, Failed):
                logger.info(
                    "command_dependency_unavailable",
                    command=node.qualified_name,
                    dependency=dependency.name,
                )
                return dependency.name
        return None

    @staticmethod
    def _as_response(result: Union[Response, str, None]) -> Optional[Response]:
        if result is None or isinstance(result, Response):
            return result
        if isinstance(result, str):
            return Response.text(result)
        raise TypeError(
            f"Executor returned {type(result).__name__}, expected Response, str or None"
        )

    def _error_response(
        self,
        error: Exception,
        stage: DispatchStage,
        resolution: Optional[Resolution],
        context: RequestContext,
    ) -> Response:
        incident_id = uuid.uuid4().hex[:8]
        command = (
            resolution.node.qualified_name
            if resolution is not None and resolution.node is not None
            else None
        )
        if isinstance(error, asyncio.TimeoutError):
            message = f"Command timed out after {self.execution_timeout}s"
        elif isinstance(error, ExecutionError):
            message = error.message
        else:
            message = "Command raised an error"
        wrapped = ExecutionError(
            message,
            command=command,
            incident_id=incident_id,
            stage=stage.value,
        )
        logger.error(
            "command_execution_failed",
            command=command,
            stage=stage.value,
            incident=incident_id,
            user_id=context.user_id,
            error=str(wrapped),
            cause=repr(error),
            exc_info=error,
        )
        return Response.error(incident_id)

    # --- Startup ---

    async def initialize_all(self) -> None:
        """Resolve dependencies and run initializers for every enabled root.

        Roots are processed concurrently and independently. Completes
        once every root has been initialized or skipped.
        """
        await asyncio.gather(*(self._initialize_root(root) for root in self.tree))
        logger.info(
            "modules_initialized",
            initialized=[r.name for r in self.tree if r.initialized],
            disabled=[r.name for r in self.tree if not r.enabled],
        )

    async def _initialize_root(self, root: RootCommand) -> None:
        if not root.enabled:
            logger.info("module_disabled", module=root.name)
            return

        # One attempt per root; overlapping passes await the same future
        pending = self._initializations.get(root.name)
        if pending is None:
            pending = asyncio.ensure_future(self._run_initialization(root))
            self._initializations[root.name] = pending
        await asyncio.shield(pending)

    async def _run_initialization(self, root: RootCommand) -> None:
        if root.initialized:
            return

        outcomes = await asyncio.gather(*(dep.resolve() for dep in root.dependencies))
        missing: List[str] = [
            dep.name
            for dep, outcome in zip(root.dependencies, outcomes)
            if isinstance(outcome, Failed)
        ]
        if missing:
            skipped = InitializationError(
                f"Initializer skipped, unresolved dependencies: {', '.join(missing)}",
                root=root.name,
                missing=missing,
            )
            logger.warning(
                "module_initialization_skipped",
                module=root.name,
                missing_dependencies=skipped.missing,
                error=str(skipped),
            )
            return

        logger.info("module_initializing", module=root.name)
        try:
            if root.initializer is not None:
                await asyncio.wait_for(
                    root.initializer(), timeout=self.initialization_timeout
                )
        except Exception as e:
            root.enabled = False
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else "raised"
            error = InitializationError(
                f"Initializer {reason}, this module will be disabled",
                root=root.name,
            )
            logger.error(
                "module_initialization_failed",
                module=root.name,
                error=str(error),
                cause=repr(e),
                exc_info=e,
            )
            return

        root.initialized = True
