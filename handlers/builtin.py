# ============================================================================
# BUILT-IN ACTIONS
# ============================================================================
# STATUS: Core - Standard action implementations
# PURPOSE: Control-flow and utility actions available to every process
# CREATED: 18 OCT 2026
# ============================================================================
"""
Built-in Actions

Utility actions:
    echo     - returns its params as output
    log      - writes `message` to the log at `level`
    fail     - always fails with `message`
    wait     - cancellable sleep for `seconds`
    set      - assigns its params into the process variables

Nested process actions (run through ctx.process, the ProcessContext):
    process        - run a sub-process and wait for it
    process_async  - launch a sub-process and continue immediately
    for_each       - run a sub-process once per item of `items`
    on_schedule    - run a sub-process at every occurrence of `schedule`

Example:
    tasks:
      nightly_files:
        action: for_each
        params:
          process: load_file
          items: "{{ vars.files }}"
          variable: file
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from core.contracts import RunStatus
from core.errors import DbFlowError, ScheduleParseError
from handlers.registry import ActionContext, ActionResult, register_action
from recurrence.parser import parse_schedule_set

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


# ============================================================================
# UTILITY ACTIONS
# ============================================================================

@register_action("echo", description="Returns the input params as output", tags=["utility"])
async def echo_action(ctx: ActionContext) -> ActionResult:
    """Simple echo action for testing and wiring."""
    logger.info(f"Echo action called with params: {ctx.params}")
    return ActionResult.success_result(output=dict(ctx.params))


@register_action("log", description="Writes a message to the log", tags=["utility"])
async def log_action(ctx: ActionContext) -> ActionResult:
    """
    Params:
        message: Text to log
        level: debug | info | warning | error (default info)
    """
    message = str(ctx.params.get("message", ""))
    level = _LOG_LEVELS.get(str(ctx.params.get("level", "info")).lower(), logging.INFO)
    logger.log(level, message)
    return ActionResult.success_result(output={"message": message})


@register_action("fail", description="Always fails (for testing error handling)", tags=["utility"])
async def fail_action(ctx: ActionContext) -> ActionResult:
    message = ctx.params.get("message", "Intentional failure")
    return ActionResult.failure_result(str(message))


@register_action("wait", description="Sleeps for a number of seconds, cancellable", tags=["utility"])
async def wait_action(ctx: ActionContext) -> ActionResult:
    """
    Params:
        seconds: How long to sleep (default 1)
    """
    seconds = float(ctx.params.get("seconds", 1))
    logger.debug(f"Waiting {seconds}s")

    if not await ctx.token.sleep(seconds):
        return ActionResult.cancelled_result(output={"requested": seconds})

    return ActionResult.success_result(output={"slept_for": seconds})


@register_action("set", description="Assigns params into the process variables", tags=["utility"])
async def set_action(ctx: ActionContext) -> ActionResult:
    """Every param becomes (or overwrites) a process variable."""
    ctx.variables.update(ctx.params)
    return ActionResult.success_result(output=dict(ctx.params))


# ============================================================================
# NESTED PROCESS ACTIONS
# ============================================================================

def _require_process_param(ctx: ActionContext) -> str:
    process_id = ctx.params.get("process")
    if not process_id:
        raise ValueError(f"Action '{ctx.action}' requires a 'process' param")
    if ctx.process is None:
        raise ValueError(f"Action '{ctx.action}' needs a process context")
    return str(process_id)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _summarize(result) -> Dict[str, Any]:
    return {
        "process_id": result.process_id,
        "status": result.status.value,
        "message": result.message,
        "tasks": {name: status.value for name, status in result.task_statuses.items()},
        "outputs": result.outputs(),
    }


def _result_from_process(result) -> ActionResult:
    summary = _summarize(result)
    if result.status == RunStatus.RUN_TERMINATED:
        return ActionResult.cancelled_result(output=summary)
    if not result.succeeded:
        return ActionResult.failure_result(
            f"Sub-process {result.process_id} {result.status.value}: {result.message}",
            output=summary,
        )
    return ActionResult.success_result(output=summary)


@register_action("process", description="Runs a nested process and waits for it", tags=["process"])
async def process_action(ctx: ActionContext) -> ActionResult:
    """
    Params:
        process: Process id to run
        args: Positional arguments (optional)
        variables: Initial variable bindings (optional)
    """
    try:
        process_id = _require_process_param(ctx)
        result = await ctx.process.run_subprocess(
            process_id,
            args=_as_list(ctx.params.get("args")),
            variables=ctx.params.get("variables") or {},
        )
    except (DbFlowError, ValueError) as e:
        return ActionResult.failure_result(f"{type(e).__name__}: {e}")

    return _result_from_process(result)


@register_action("process_async", description="Launches a nested process without waiting", tags=["process"])
async def process_async_action(ctx: ActionContext) -> ActionResult:
    """
    Fire-and-continue. The owning process waits for the launch before it
    finishes, and cancelling the owner cancels the launch.
    """
    try:
        process_id = _require_process_param(ctx)
        ctx.process.launch_background(
            process_id,
            args=_as_list(ctx.params.get("args")),
            variables=ctx.params.get("variables") or {},
        )
    except (DbFlowError, ValueError) as e:
        return ActionResult.failure_result(f"{type(e).__name__}: {e}")

    return ActionResult.success_result(output={"process_id": process_id, "launched": True})


@register_action("for_each", description="Runs a nested process once per item", tags=["process"])
async def for_each_action(ctx: ActionContext) -> ActionResult:
    """
    Params:
        process: Process id to run per item
        items: List of items
        variable: Variable name bound to the item (default "item")
        parallel: Run all items at once (default false)

    Each run also receives the item as its first positional argument.
    Fails if any item's run fails.
    """
    try:
        process_id = _require_process_param(ctx)
    except ValueError as e:
        return ActionResult.failure_result(str(e))

    items = _as_list(ctx.params.get("items"))
    variable = str(ctx.params.get("variable", "item"))
    parallel = bool(ctx.params.get("parallel", False))

    def bindings(index: int, item: Any) -> Dict[str, Any]:
        return {variable: item, "index": index}

    results = []
    try:
        if parallel:
            results = await asyncio.gather(*[
                ctx.process.run_subprocess(process_id, args=[item], variables=bindings(i, item))
                for i, item in enumerate(items)
            ])
        else:
            for i, item in enumerate(items):
                if ctx.cancelled:
                    break
                results.append(await ctx.process.run_subprocess(
                    process_id, args=[item], variables=bindings(i, item),
                ))
    except DbFlowError as e:
        return ActionResult.failure_result(f"{type(e).__name__}: {e}")

    output = {
        "process_id": process_id,
        "count": len(items),
        "runs": [_summarize(r) for r in results],
    }
    if ctx.cancelled:
        return ActionResult.cancelled_result(output=output)

    failed = [i for i, r in enumerate(results) if not r.succeeded]
    if failed:
        return ActionResult.failure_result(
            f"{len(failed)} of {len(items)} runs of {process_id} failed (items {failed})",
            output=output,
        )
    return ActionResult.success_result(output=output)


@register_action("on_schedule", description="Runs a nested process at every schedule occurrence", tags=["process"])
async def on_schedule_action(ctx: ActionContext) -> ActionResult:
    """
    Params:
        process: Process id to run at each occurrence
        schedule: Schedule text (e.g. "Daily every 10 minutes")
        args: Positional arguments for each run (optional)

    Runs until the schedule has no further occurrence or the owning run is
    cancelled. A failing occurrence is logged and does not stop the loop;
    the action fails at the end if any occurrence failed.
    """
    try:
        process_id = _require_process_param(ctx)
        schedules = parse_schedule_set(str(ctx.params.get("schedule", "")))
    except (ScheduleParseError, ValueError) as e:
        return ActionResult.failure_result(f"{type(e).__name__}: {e}")

    args = _as_list(ctx.params.get("args"))
    interrupt = asyncio.Event()

    async def relay_cancellation() -> None:
        await ctx.token.wait()
        interrupt.set()

    relay = asyncio.create_task(relay_cancellation())
    occurrences = 0
    failures: List[str] = []

    async def fire() -> Optional[ActionResult]:
        nonlocal occurrences
        occurrences += 1
        try:
            result = await ctx.process.run_subprocess(process_id, args=args)
        except DbFlowError as e:
            return ActionResult.failure_result(f"{type(e).__name__}: {e}")
        if not result.succeeded and result.status != RunStatus.RUN_TERMINATED:
            logger.warning(f"Occurrence {occurrences} of {process_id} ended {result.status.value}")
            failures.append(f"#{occurrences}: {result.message}")
        return None

    try:
        if schedules.is_immediate:
            error = await fire()
            if error is not None:
                return error

        while not ctx.cancelled:
            if not await schedules.sleep_until_next(interrupt):
                break
            error = await fire()
            if error is not None:
                return error
    finally:
        relay.cancel()

    output = {"process_id": process_id, "occurrences": occurrences, "failures": failures}
    if ctx.cancelled:
        return ActionResult.cancelled_result(output=output)
    if failures:
        return ActionResult.failure_result(
            f"{len(failures)} of {occurrences} occurrences failed", output=output,
        )
    return ActionResult.success_result(output=output)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "echo_action",
    "log_action",
    "fail_action",
    "wait_action",
    "set_action",
    "process_action",
    "process_async_action",
    "for_each_action",
    "on_schedule_action",
]
