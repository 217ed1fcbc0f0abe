# ============================================================================
# TEMPLATE RESOLUTION ENGINE
# ============================================================================
# STATUS: Core - Template resolution with Jinja2
# PURPOSE: Resolve {{ }} expressions in task parameters
# CREATED: 18 OCT 2026
# ============================================================================
"""
Template Resolution Engine

Resolves template expressions in task parameters just before dispatch.

Supported patterns:
- {{ vars.name }} - Process variables (initial bindings, properties, `set`)
- {{ args[0] }} - Positional arguments of the run
- {{ tasks.extract.output.rows }} - Output from a finished task
- {{ tasks.extract.status }} - Status of a task
- {{ env.VAR_NAME }} - Environment variables

Examples:
    params:
      table: "{{ vars.target_table }}"
      run_date: "{{ args[0] }}"
      row_count: "{{ tasks.extract.output.rows }}"

The same context dictionary is used to evaluate task guards.
"""

import ast
import os
import re
import logging
from typing import Any, Dict, List, Optional
from jinja2 import Environment, BaseLoader, TemplateSyntaxError, UndefinedError, StrictUndefined

from core.errors import TemplateResolutionError

logger = logging.getLogger(__name__)


class TemplateResolver:
    """
    Jinja2-based template resolver for task parameters.

    Thread-safe, can be reused across multiple resolutions.
    """

    def __init__(self):
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            # Keep undefined as undefined for error detection
            undefined=StrictUndefined,
        )
        self._template_pattern = re.compile(r'\{\{.*?\}\}')

    def resolve(
        self,
        params: Dict[str, Any],
        context: "TemplateContext",
    ) -> Dict[str, Any]:
        """
        Resolve all template expressions in a params dict.

        Raises:
            TemplateResolutionError: If template cannot be resolved
        """
        return self._resolve_value(params, context.to_dict())

    def _resolve_value(self, value: Any, context: Dict[str, Any]) -> Any:
        """Recursively resolve template expressions in a value."""
        if isinstance(value, str):
            return self._resolve_string(value, context)
        elif isinstance(value, dict):
            return {k: self._resolve_value(v, context) for k, v in value.items()}
        elif isinstance(value, list):
            return [self._resolve_value(item, context) for item in value]
        else:
            return value

    def _resolve_string(self, value: str, context: Dict[str, Any]) -> Any:
        """Resolve template expressions in a string value."""
        if '{{' not in value:
            return value

        try:
            template = self._env.from_string(value)
            result = template.render(context)
        except (TemplateSyntaxError, UndefinedError, TypeError) as e:
            raise TemplateResolutionError(f"Failed to resolve '{value}': {e}") from e

        # A string that is exactly one expression may yield a non-string
        stripped = value.strip()
        if stripped.startswith('{{') and stripped.endswith('}}'):
            inner = stripped[2:-2]
            if '{{' not in inner and '}}' not in inner:
                return self._maybe_parse_result(result)

        return result

    def _maybe_parse_result(self, result: str) -> Any:
        """Try to parse result as Python literal (for lists, dicts, numbers)."""
        result = result.strip()
        if not result:
            return result

        if (result.startswith('[') and result.endswith(']')) or \
           (result.startswith('{') and result.endswith('}')):
            try:
                return ast.literal_eval(result)
            except (ValueError, SyntaxError):
                pass

        if result in ("True", "False"):
            return result == "True"
        if result == "None":
            return None

        try:
            if '.' in result:
                return float(result)
            return int(result)
        except ValueError:
            pass

        return result

    def has_templates(self, params: Dict[str, Any]) -> bool:
        """Check if params contain any template expressions."""
        return self._check_for_templates(params)

    def _check_for_templates(self, value: Any) -> bool:
        if isinstance(value, str):
            return bool(self._template_pattern.search(value))
        elif isinstance(value, dict):
            return any(self._check_for_templates(v) for v in value.values())
        elif isinstance(value, list):
            return any(self._check_for_templates(item) for item in value)
        return False


class TemplateContext:
    """
    Context for template resolution and guard evaluation.

    Provides access to:
    - vars: Process variable bindings
    - args: Positional arguments
    - tasks: Finished task outputs and statuses
    - env: Environment variables
    """

    def __init__(
        self,
        variables: Optional[Dict[str, Any]] = None,
        args: Optional[List[Any]] = None,
        tasks: Optional[Dict[str, "TaskContext"]] = None,
        env_prefix: str = "DBFLOW_",
    ):
        self.variables = variables if variables is not None else {}
        self.args = list(args or [])
        self.tasks = tasks or {}
        self.env_prefix = env_prefix

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for Jinja2 rendering."""
        return {
            "vars": self.variables,
            "args": self.args,
            "tasks": {name: ctx.to_dict() for name, ctx in self.tasks.items()},
            "env": _EnvAccessor(self.env_prefix),
        }


class TaskContext:
    """Context for a single task's output and status."""

    def __init__(self, output: Optional[Dict[str, Any]] = None, status: str = "waiting"):
        self.output = output or {}
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {"output": self.output, "status": self.status}


class _EnvAccessor:
    """Accessor for environment variables with optional prefix."""

    def __init__(self, prefix: str = ""):
        self._prefix = prefix

    def __getattr__(self, name: str) -> str:
        """Get environment variable, with or without prefix."""
        if name.startswith("_"):
            raise AttributeError(name)

        value = os.environ.get(f"{self._prefix}{name}")
        if value is not None:
            return value

        value = os.environ.get(name)
        if value is not None:
            return value

        raise AttributeError(f"Environment variable not found: {name}")


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_resolver: Optional[TemplateResolver] = None


def get_resolver() -> TemplateResolver:
    """Get shared template resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = TemplateResolver()
    return _resolver


def resolve_params(
    params: Dict[str, Any],
    variables: Optional[Dict[str, Any]] = None,
    args: Optional[List[Any]] = None,
) -> Dict[str, Any]:
    """Convenience function to resolve params against variables and args."""
    context = TemplateContext(variables=variables, args=args)
    return get_resolver().resolve(params, context)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "TemplateResolver",
    "TemplateContext",
    "TaskContext",
    "TemplateResolutionError",
    "get_resolver",
    "resolve_params",
]
