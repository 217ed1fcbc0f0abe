# ============================================================================
# TASK GRAPH ENGINE
# ============================================================================
# STATUS: Core - Process instance execution
# PURPOSE: Drive one process instance from start to a terminal outcome
# CREATED: 18 OCT 2026
# ============================================================================
"""
Task Graph Engine

Executes one instance of a ProcessDefinition. Tasks with no dependency
start immediately; every other task waits until its dependency expression
is decided:

    True   -> READY (then guard) -> RUNNING -> SUCCEEDED | FAILED | TERMINATED
    False  -> SKIPPED, and the skip is propagated to its own dependents
    None   -> keep WAITING

Every task that becomes READY is started at once, so independent tasks run
concurrently. The engine owns all TaskState records of its instance; only
the engine coroutine mutates them.

Usage:
    context = ProcessContext(args=["2026-10-18"], loader=service.get_or_raise)
    engine = TaskGraphEngine(process, context)
    result = await engine.run()
    result.status   # RunStatus.RUN_SUCCEEDED
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Union

from core.cancellation import CancellationToken
from core.config import get_defaults
from core.contracts import Outcome, RunStatus, TaskStatus
from core.errors import DefinitionError, GuardEvaluationError, NestingDepthError, TemplateResolutionError
from core.logging import log_context
from core.models import ProcessDefinition, TaskState
from handlers.registry import ActionContext, ActionNotFoundError, ActionResult, execute_action
from orchestrator.engine.evaluator import get_evaluator
from orchestrator.engine.expressions import Expr, evaluate, iter_terms
from orchestrator.engine.templates import TaskContext, TemplateContext, get_resolver

logger = logging.getLogger(__name__)

ProcessLoader = Callable[[str], ProcessDefinition]


# ============================================================================
# RESULT
# ============================================================================

@dataclass
class ProcessResult:
    """Terminal outcome of one process instance."""
    process_id: str
    status: RunStatus
    task_states: Dict[str, TaskState] = field(default_factory=dict)
    message: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.RUN_SUCCEEDED

    @property
    def task_statuses(self) -> Dict[str, TaskStatus]:
        return {name: state.status for name, state in self.task_states.items()}

    def outputs(self) -> Dict[str, Any]:
        """Output of every task that produced one."""
        return {
            name: state.output
            for name, state in self.task_states.items()
            if state.output is not None
        }


# ============================================================================
# PROCESS CONTEXT
# ============================================================================

class ProcessContext:
    """
    Execution environment shared by the tasks of one process instance.

    Holds the variable bindings, positional arguments and cancellation
    token of the instance, plus the bookkeeping for nested and background
    sub-processes. A nested process gets a child context: a child token
    (cancelled with its parent) and depth + 1.
    """

    def __init__(
        self,
        variables: Optional[Dict[str, Any]] = None,
        args: Optional[List[Any]] = None,
        token: Optional[CancellationToken] = None,
        depth: int = 0,
        loader: Optional[ProcessLoader] = None,
        run_id: Optional[int] = None,
        job_name: Optional[str] = None,
        max_depth: Optional[int] = None,
    ):
        self.variables: Dict[str, Any] = variables if variables is not None else {}
        self.args: List[Any] = list(args or [])
        self.token = token or CancellationToken()
        self.depth = depth
        self.loader = loader
        self.run_id = run_id
        self.job_name = job_name
        self.max_depth = max_depth if max_depth is not None else get_defaults().engine.max_nesting_depth
        self._background: List[asyncio.Task] = []

    def child(
        self,
        args: Optional[List[Any]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> "ProcessContext":
        """
        Context for a nested process.

        Raises:
            NestingDepthError: If depth + 1 exceeds max_depth
        """
        depth = self.depth + 1
        if depth > self.max_depth:
            raise NestingDepthError(depth, self.max_depth)

        return ProcessContext(
            variables=dict(variables or {}),
            args=args,
            token=self.token.child(),
            depth=depth,
            loader=self.loader,
            run_id=self.run_id,
            job_name=self.job_name,
            max_depth=self.max_depth,
        )

    def resolve(self, process: Union[str, ProcessDefinition]) -> ProcessDefinition:
        """Look up a process by id through the loader."""
        if isinstance(process, ProcessDefinition):
            return process
        if self.loader is None:
            raise DefinitionError(f"Cannot load process '{process}': no process loader configured")
        return self.loader(process)

    async def run_subprocess(
        self,
        process: Union[str, ProcessDefinition],
        args: Optional[List[Any]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ProcessResult:
        """
        Run a nested process to completion.

        Raises:
            NestingDepthError: If the nesting limit would be exceeded
            DefinitionError: If the nested process is invalid
        """
        definition = self.resolve(process)
        child = self.child(args=args, variables=variables)
        logger.info(
            f"Starting nested process {definition.process_id} (depth={child.depth})"
        )
        return await TaskGraphEngine(definition, child).run()

    def launch_background(
        self,
        process: Union[str, ProcessDefinition],
        args: Optional[List[Any]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task:
        """
        Start a nested process without waiting for it.

        The owning engine awaits every background launch before its own
        run() returns.
        """
        definition = self.resolve(process)
        child = self.child(args=args, variables=variables)
        engine = TaskGraphEngine(definition, child)
        task = asyncio.create_task(
            engine.run(),
            name=f"background-{definition.process_id}",
        )
        self._background.append(task)
        logger.info(f"Launched background process {definition.process_id}")
        return task

    @property
    def background_count(self) -> int:
        return sum(1 for task in self._background if not task.done())

    async def wait_background(self) -> None:
        """Wait for every background launch, including ones started meanwhile."""
        seen = 0
        while seen < len(self._background):
            pending = self._background[seen:]
            seen = len(self._background)
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    logger.error(f"Background process raised: {result!r}")
                elif not result.succeeded:
                    logger.warning(
                        f"Background process {result.process_id} ended "
                        f"{result.status.value}: {result.message}"
                    )


# ============================================================================
# ENGINE
# ============================================================================

class TaskGraphEngine:
    """
    Executes one process instance.

    The definition is checked for acyclicity and unknown predecessors on
    construction, so an invalid process never yields an engine.
    """

    def __init__(self, process: ProcessDefinition, context: Optional[ProcessContext] = None):
        self.process = process
        self.context = context or ProcessContext()

        # Raises DefinitionError / CyclicDependencyError
        self.order = get_evaluator().check(process)

        self._dependencies: Dict[str, Optional[Expr]] = {
            name: task.dependency() for name, task in process.tasks.items()
        }
        self._dependents: Dict[str, List[str]] = {name: [] for name in process.tasks}
        self._handled_failures: Set[str] = set()
        for name, expr in self._dependencies.items():
            if expr is None:
                continue
            for term in iter_terms(expr):
                if name not in self._dependents[term.task]:
                    self._dependents[term.task].append(name)
                if term.outcome in (Outcome.FAILS, Outcome.COMPLETES):
                    self._handled_failures.add(term.task)

        self.states: Dict[str, TaskState] = {
            name: TaskState(task_name=name) for name in process.tasks
        }
        self._running: Dict[asyncio.Task, str] = {}
        self._started = False

    @property
    def token(self) -> CancellationToken:
        return self.context.token

    def cancel(self) -> None:
        """Request cancellation. Idempotent; running actions are told via the token."""
        if not self.token.cancelled:
            logger.info(f"Cancellation requested for process {self.process.process_id}")
        self.token.cancel()

    def statuses(self) -> Dict[str, TaskStatus]:
        return {name: state.status for name, state in self.states.items()}

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> ProcessResult:
        """
        Run the instance until every task is terminal.

        Returns a ProcessResult; never raises for task failures.
        """
        if self._started:
            raise RuntimeError(f"Process instance {self.process.process_id} already ran")
        self._started = True

        variables = self.context.variables
        for key, value in self.process.variables.items():
            variables.setdefault(key, value)
        variables.update(self.process.bind_arguments(self.context.args))

        with log_context(process_id=self.process.process_id):
            logger.info(
                f"Starting process {self.process.process_id} "
                f"({len(self.states)} tasks, depth={self.context.depth})"
            )

            for name in self.order:
                if self._dependencies[name] is None and not self._admit(name):
                    # Guard skipped or failed it before dispatch
                    self._propagate(name)

            cancel_waiter = asyncio.create_task(self.token.wait())
            try:
                await self._drive(cancel_waiter)
            finally:
                cancel_waiter.cancel()
                for task in list(self._running):
                    task.cancel()
                if self._running:
                    await asyncio.gather(*self._running, return_exceptions=True)

            await self.context.wait_background()

            result = self._build_result()
            logger.info(
                f"Process {self.process.process_id} finished: {result.status.value}"
                + (f" ({result.message})" if result.message else "")
            )
            return result

    async def _drive(self, cancel_waiter: asyncio.Task) -> None:
        while True:
            if self.token.cancelled:
                self._terminate_pending()
            else:
                for name in self.order:
                    if self.states[name].status == TaskStatus.READY:
                        self._dispatch(name)

            if not self._running:
                break

            waitables: Set[asyncio.Future] = set(self._running)
            if not cancel_waiter.done():
                waitables.add(cancel_waiter)

            done, _ = await asyncio.wait(waitables, return_when=asyncio.FIRST_COMPLETED)

            for finished in done:
                if finished is cancel_waiter:
                    continue
                name = self._running.pop(finished)
                self._complete(name, finished)

    def _dispatch(self, name: str) -> None:
        state = self.states[name]
        state.mark_running()
        task = asyncio.create_task(
            self._run_task(name),
            name=f"{self.process.process_id}.{name}",
        )
        self._running[task] = name

    def _terminate_pending(self) -> None:
        for state in self.states.values():
            if state.status in (TaskStatus.WAITING, TaskStatus.READY):
                state.mark_terminated()

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    def _template_context(self) -> TemplateContext:
        return TemplateContext(
            variables=self.context.variables,
            args=self.context.args,
            tasks={
                name: TaskContext(output=state.output, status=state.status.value)
                for name, state in self.states.items()
            },
        )

    async def _run_task(self, name: str) -> ActionResult:
        task = self.process.tasks[name]

        with log_context(task_name=name):
            try:
                params = get_resolver().resolve(task.params, self._template_context())
            except TemplateResolutionError as e:
                logger.error(f"Task {name} parameters could not be resolved: {e}")
                return ActionResult.failure_result(f"Template error: {e}")

            action_ctx = ActionContext(
                task_name=name,
                action=task.action,
                params=params,
                token=self.token,
                variables=self.context.variables,
                args=self.context.args,
                run_id=self.context.run_id,
                job_name=self.context.job_name,
                process_id=self.process.process_id,
                process=self.context,
            )

            logger.debug(f"Dispatching task {name} (action={task.action})")
            try:
                return await execute_action(task.action, action_ctx)
            except ActionNotFoundError as e:
                logger.error(str(e))
                return ActionResult.failure_result(str(e))

    def _complete(self, name: str, finished: asyncio.Task) -> None:
        state = self.states[name]

        if finished.cancelled():
            state.mark_terminated()
        else:
            error = finished.exception()
            if error is not None:
                logger.exception(f"Task {name} raised outside its action", exc_info=error)
                state.mark_failed(f"{type(error).__name__}: {error}")
            else:
                result: ActionResult = finished.result()
                if result.cancelled:
                    state.mark_terminated()
                elif result.success:
                    state.mark_succeeded(result.output)
                else:
                    state.mark_failed(result.error_message or "Action failed", result.output or None)

        logger.info(f"Task {name} -> {state.status.value}")
        self._propagate(name)

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------

    def _propagate(self, origin: str) -> None:
        """Re-evaluate the waiting dependents of a task that just became terminal."""
        worklist = [origin]
        while worklist:
            current = worklist.pop(0)
            statuses = self.statuses()
            for dependent in self._dependents[current]:
                if self.states[dependent].status != TaskStatus.WAITING:
                    continue

                decision = evaluate(self._dependencies[dependent], statuses)
                if decision is None:
                    continue
                if decision is False:
                    self.states[dependent].mark_skipped(
                        f"Dependency can never hold: {self._dependencies[dependent]}"
                    )
                    worklist.append(dependent)
                elif not self._admit(dependent):
                    worklist.append(dependent)
                statuses = self.statuses()

    def _admit(self, name: str) -> bool:
        """
        Move a task to READY and apply its guard.

        Returns True if the task stays READY, False if it became terminal.
        """
        state = self.states[name]
        state.mark_ready()

        condition = self.process.tasks[name].condition
        if condition is None:
            return True

        evaluator = get_evaluator().condition_evaluator
        try:
            holds = evaluator.evaluate(condition, self._template_context().to_dict())
        except GuardEvaluationError as e:
            logger.error(f"Guard on task {name} failed: {e}")
            state.mark_failed(f"Guard error: {e}")
            return False

        if not holds:
            logger.info(f"Task {name} skipped: guard '{condition}' is false")
            state.mark_skipped(f"Guard is false: {condition}")
            return False
        return True

    # ------------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------------

    def _build_result(self) -> ProcessResult:
        if self.token.cancelled:
            status = RunStatus.RUN_TERMINATED
            message = "Run was cancelled"
        else:
            unhandled = [
                name for name, state in self.states.items()
                if state.status == TaskStatus.FAILED and name not in self._handled_failures
            ]
            # Actions that cancelled themselves without a run cancellation
            terminated = [
                name for name, state in self.states.items()
                if state.status == TaskStatus.TERMINATED
            ]
            if unhandled:
                status = RunStatus.RUN_FAILED
                message = "; ".join(
                    f"{name}: {self.states[name].error_message}" for name in unhandled
                )
            elif terminated:
                status = RunStatus.RUN_TERMINATED
                message = f"Tasks terminated: {', '.join(terminated)}"
            else:
                status = RunStatus.RUN_SUCCEEDED
                message = None

        return ProcessResult(
            process_id=self.process.process_id,
            status=status,
            task_states=dict(self.states),
            message=message,
            variables=dict(self.context.variables),
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ProcessLoader",
    "ProcessResult",
    "ProcessContext",
    "TaskGraphEngine",
]
