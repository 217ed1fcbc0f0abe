# ============================================================================
# ACTIONS
# ============================================================================
# STATUS: Core - Action registration and lookup
# PURPOSE: Register and discover task actions
# CREATED: 18 OCT 2026
# ============================================================================
"""
Action Registry

Provides a decorator-based registration system for task actions.

Usage:
    from handlers import register_action, ActionContext, ActionResult

    @register_action("truncate_staging")
    async def truncate_staging(ctx: ActionContext) -> ActionResult:
        ctx.token.raise_if_cancelled()
        return ActionResult.success_result({"table": ctx.params["table"]})
"""

from handlers.registry import (
    register_action,
    get_action,
    get_action_or_raise,
    list_actions,
    action_names,
    get_action_metadata,
    unregister_action,
    clear_actions,
    validate_actions,
    execute_action,
    ActionFunc,
    ActionContext,
    ActionResult,
    ActionError,
    ActionNotFoundError,
    DuplicateActionError,
)

# Import action modules to trigger registration
import handlers.builtin  # noqa: F401 - import for side effects (echo, wait, process, ...)

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
