# ============================================================================
# ACTION REGISTRY
# ============================================================================
# STATUS: Core - Action registration and lookup
# PURPOSE: Register and discover task actions by name
# CREATED: 18 OCT 2026
# ============================================================================
"""
Action Registry

Central registry for task actions. The task graph engine uses this to
look up the function to execute for a task's `action:` name.

Design:
- Actions are registered at import time via decorator
- Registry is a simple dict (action_name -> action_func)
- Fail-fast on duplicate registration
- Supports both sync and async actions (sync ones run in the executor)

An action receives an ActionContext and returns an ActionResult. It must
observe ctx.token at its I/O boundaries and, once cancelled, either return
ActionResult.cancelled_result() or raise ActionCancelled. Any other
exception is converted into a failure result here and never reaches the
engine.
"""

import asyncio
import contextvars
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from core.cancellation import CancellationToken
from core.errors import ActionCancelled, DbFlowError

logger = logging.getLogger(__name__)


# ============================================================================
# ACTION TYPES
# ============================================================================

@dataclass
class ActionContext:
    """
    Context passed to action functions.

    Contains all information needed to execute one task.
    """
    task_name: str
    action: str
    params: Dict[str, Any]
    token: CancellationToken
    variables: Dict[str, Any] = field(default_factory=dict)
    args: List[Any] = field(default_factory=list)
    run_id: Optional[int] = None
    job_name: Optional[str] = None
    process_id: Optional[str] = None

    # Owning process instance (nested sub-processes, background launches)
    process: Optional[Any] = None

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled


@dataclass
class ActionResult:
    """
    Result returned by action functions.

    Actions should return this to indicate success/failure/cancellation.
    """
    success: bool = True
    output: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    cancelled: bool = False

    @classmethod
    def success_result(cls, output: Optional[Dict[str, Any]] = None) -> "ActionResult":
        """Create a success result."""
        return cls(success=True, output=output or {})

    @classmethod
    def failure_result(
        cls,
        error_message: str,
        output: Optional[Dict[str, Any]] = None,
    ) -> "ActionResult":
        """Create a failure result."""
        return cls(success=False, error_message=error_message, output=output or {})

    @classmethod
    def cancelled_result(cls, output: Optional[Dict[str, Any]] = None) -> "ActionResult":
        """Create a result for an action that honored cancellation."""
        return cls(
            success=False,
            output=output or {},
            error_message="Cancelled",
            cancelled=True,
        )


# Action function type
ActionFunc = Callable[[ActionContext], Union[ActionResult, Awaitable[ActionResult]]]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ActionError(DbFlowError):
    """Base exception for action registry errors."""
    pass


class ActionNotFoundError(ActionError):
    """Raised when an action is not found in the registry."""
    def __init__(self, action_name: str):
        self.action_name = action_name
        super().__init__(f"Action not found: {action_name}")


class DuplicateActionError(ActionError):
    """Raised when an action name is already registered."""
    def __init__(self, action_name: str):
        self.action_name = action_name
        super().__init__(f"Action already registered: {action_name}")


# ============================================================================
# REGISTRY
# ============================================================================

_actions: Dict[str, ActionFunc] = {}
_action_metadata: Dict[str, Dict[str, Any]] = {}


def register_action(
    name: str,
    *,
    description: str = "",
    tags: Optional[List[str]] = None,
) -> Callable[[ActionFunc], ActionFunc]:
    """
    Decorator to register an action function.

    Example:
        @register_action("load_table", description="Bulk load a staging table")
        async def load_table(ctx: ActionContext) -> ActionResult:
            ctx.token.raise_if_cancelled()
            return ActionResult.success_result({"rows": 1200})
    """
    def decorator(func: ActionFunc) -> ActionFunc:
        if name in _actions:
            raise DuplicateActionError(name)

        _actions[name] = func
        _action_metadata[name] = {
            "name": name,
            "description": description,
            "tags": tags or [],
            "function": func.__name__,
            "module": func.__module__,
            "is_async": asyncio.iscoroutinefunction(func),
            "registered_at": datetime.now().isoformat(),
        }

        logger.debug(f"Registered action: {name} ({func.__module__}.{func.__name__})")
        return func

    return decorator


def get_action(name: str) -> Optional[ActionFunc]:
    """Get an action by name, or None."""
    return _actions.get(name)


def get_action_or_raise(name: str) -> ActionFunc:
    """
    Get an action by name, raising if not found.

    Raises:
        ActionNotFoundError if action not found
    """
    action = _actions.get(name)
    if action is None:
        raise ActionNotFoundError(name)
    return action


def list_actions() -> List[Dict[str, Any]]:
    """List all registered actions with metadata."""
    return list(_action_metadata.values())


def action_names() -> List[str]:
    """Names of all registered actions."""
    return list(_actions)


def get_action_metadata(name: str) -> Optional[Dict[str, Any]]:
    """Get metadata for a specific action."""
    return _action_metadata.get(name)


def unregister_action(name: str) -> None:
    """Remove one action. Primarily for testing."""
    _actions.pop(name, None)
    _action_metadata.pop(name, None)


def clear_actions() -> None:
    """
    Clear all registered actions.

    Primarily for testing.
    """
    _actions.clear()
    _action_metadata.clear()
    logger.debug("Cleared all actions")


def validate_actions(process_actions: List[str]) -> List[str]:
    """
    Validate that all actions used by a process are registered.

    Returns:
        List of missing action names (empty if all valid)
    """
    return [name for name in process_actions if name not in _actions]


# ============================================================================
# ASYNC ACTION EXECUTION
# ============================================================================

def _coerce_result(value: Any) -> ActionResult:
    if isinstance(value, ActionResult):
        return value
    if value is None:
        return ActionResult.success_result()
    if isinstance(value, dict):
        return ActionResult.success_result(value)
    return ActionResult.success_result({"result": value})


async def execute_action(name: str, context: ActionContext) -> ActionResult:
    """
    Execute an action by name.

    Handles both sync and async actions. Exceptions raised by the action
    become failure results; ActionCancelled becomes a cancelled result.

    Raises:
        ActionNotFoundError if action not found
    """
    action = get_action_or_raise(name)

    if context.token.cancelled:
        return ActionResult.cancelled_result()

    try:
        if asyncio.iscoroutinefunction(action):
            result = await action(context)
        else:
            # Run sync action in thread pool, keeping the log context
            loop = asyncio.get_running_loop()
            call = functools.partial(contextvars.copy_context().run, action, context)
            result = await loop.run_in_executor(None, call)

        return _coerce_result(result)

    except ActionCancelled:
        logger.info(f"Action {name} observed cancellation")
        return ActionResult.cancelled_result()
    except Exception as e:
        logger.exception(f"Action {name} failed: {e}")
        return ActionResult.failure_result(f"{type(e).__name__}: {e}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "register_action",
    "get_action",
    "get_action_or_raise",
    "list_actions",
    "action_names",
    "get_action_metadata",
    "unregister_action",
    "clear_actions",
    "validate_actions",
    "execute_action",
    "ActionFunc",
    "ActionContext",
    "ActionResult",
    "ActionError",
    "ActionNotFoundError",
    "DuplicateActionError",
]
