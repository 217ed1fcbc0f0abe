# ============================================================================
# PROCESS DEFINITION MODEL
# ============================================================================
# STATUS: Core model - Process template/blueprint
# PURPOSE: Define process structure loaded from YAML
# CREATED: 18 OCT 2026
# EXPORTS: ProcessDefinition, TaskDefinition
# DEPENDENCIES: pydantic
# ============================================================================
"""
Process Definition Models

A ProcessDefinition is the static template for a run. It defines:
- What tasks exist
- What each task does (action)
- Dependencies between tasks (`after`)
- Guard conditions (`if`)

Processes are loaded from YAML files and cached. Each run instantiates a
fresh TaskGraphEngine from the same definition, so no task state is shared
between runs.
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskDefinition(BaseModel):
    """
    Definition of a single task in a process.

    This is the TEMPLATE - what the task does.
    TaskState (in task.py) is the INSTANCE - runtime state.
    """
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    action: str = Field(
        ...,
        max_length=64,
        description="Registered action name (e.g., 'echo', 'process')"
    )
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters with {{ template }} expressions"
    )
    after: Optional[Any] = Field(
        default=None,
        description="Dependency text ('a SUCCEEDS AND b'), a list of names, or an expression"
    )
    condition: Optional[str] = Field(
        default=None,
        alias="if",
        description="Guard expression over process variables"
    )
    description: Optional[str] = None

    @field_validator("condition", mode="before")
    @classmethod
    def stringify_condition(cls, v):
        """YAML turns `if: true` into a bool; keep guards textual."""
        if isinstance(v, bool):
            return "true" if v else "false"
        return v

    def dependency(self):
        """Parsed dependency expression, or None for a task that starts immediately."""
        from orchestrator.engine.expressions import as_expression
        return as_expression(self.after)


class ProcessDefinition(BaseModel):
    """
    Complete process definition loaded from YAML.

    This is the TEMPLATE that runs are created from.
    """
    process_id: str = Field(..., max_length=128)
    name: Optional[str] = Field(default=None, max_length=128)
    version: int = Field(default=1, ge=1)
    description: Optional[str] = None

    # Positional argument names, bound in order from the job's argument list
    parameters: List[str] = Field(default_factory=list)

    # Initial variable bindings
    variables: Dict[str, Any] = Field(default_factory=dict)

    tasks: Dict[str, TaskDefinition] = Field(
        ...,
        description="Map of task name -> TaskDefinition (declaration order kept)"
    )

    @field_validator("tasks", mode="before")
    @classmethod
    def coerce_task_shorthand(cls, v):
        """Allow `task: echo` as shorthand for `task: {action: echo}`."""
        if isinstance(v, dict):
            return {
                name: ({"action": spec} if isinstance(spec, str) else spec)
                for name, spec in v.items()
            }
        return v

    @property
    def display_name(self) -> str:
        return self.name or self.process_id

    def get_task(self, name: str) -> TaskDefinition:
        """Get a task definition by name."""
        if name not in self.tasks:
            raise KeyError(f"Task '{name}' not found in process '{self.process_id}'")
        return self.tasks[name]

    def bind_arguments(self, args: List[Any]) -> Dict[str, Any]:
        """Bind positional arguments to declared parameter names."""
        return {name: value for name, value in zip(self.parameters, args)}

    def validate_structure(self) -> List[str]:
        """
        Validate process structure.

        Checks dependency syntax, unknown predecessors and self-references.
        Cycle detection lives in the evaluator.

        Returns list of validation errors (empty if valid).
        """
        from core.errors import DefinitionError
        from orchestrator.engine.expressions import referenced_tasks

        errors = []

        if not self.tasks:
            errors.append(f"Process '{self.process_id}' has no tasks")

        for task_name, task in self.tasks.items():
            try:
                dependency = task.dependency()
            except DefinitionError as e:
                errors.append(f"Task '{task_name}': {e}")
                continue

            for predecessor in sorted(referenced_tasks(dependency)):
                if predecessor == task_name:
                    errors.append(f"Task '{task_name}' depends on itself")
                elif predecessor not in self.tasks:
                    errors.append(
                        f"Task '{task_name}' references unknown task '{predecessor}'"
                    )

        return errors


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["TaskDefinition", "ProcessDefinition"]
