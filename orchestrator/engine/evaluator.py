# ============================================================================
# PROCESS EVALUATOR
# ============================================================================
# STATUS: Core - Dependency graph validation and guard evaluation
# PURPOSE: Reject invalid processes statically; evaluate task guards
# CREATED: 18 OCT 2026
# ============================================================================
"""
Process Evaluator

Static checks and guard evaluation for task graphs.

Features:
- Dependency graph construction from `after` expressions
- Topological sort validation (cycle detection)
- Unknown predecessor / unknown action detection
- Guard (`if`) expression evaluation

The evaluator is stateless - it takes process definitions and variable
bindings as input and returns decisions. Definition errors found here
prevent a process instance from being created at all.
"""

import logging
import operator
import re
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from core.errors import CyclicDependencyError, DefinitionError, GuardEvaluationError
from core.models import ProcessDefinition
from orchestrator.engine.expressions import referenced_tasks

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class DependencyGraph:
    """
    Dependency graph for a process.

    A -> B means "B depends on A" (A must be terminal before B starts).
    Guards are ignored; only `after` references form edges.
    """
    # Task -> tasks that depend on it
    forward_edges: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # Task -> tasks it depends on
    backward_edges: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))

    # All task names, in declaration order
    nodes: List[str] = field(default_factory=list)

    def add_node(self, name: str) -> None:
        if name not in self.nodes:
            self.nodes.append(name)

    def add_edge(self, from_node: str, to_node: str) -> None:
        """Add a dependency edge: to_node depends on from_node."""
        self.forward_edges[from_node].append(to_node)
        self.backward_edges[to_node].append(from_node)
        self.add_node(from_node)
        self.add_node(to_node)

    def get_dependencies(self, name: str) -> List[str]:
        """Get tasks that this task depends on."""
        return self.backward_edges.get(name, [])

    def get_dependents(self, name: str) -> List[str]:
        """Get tasks that depend on this task."""
        return self.forward_edges.get(name, [])


# ============================================================================
# GRAPH BUILDER
# ============================================================================

class GraphBuilder:
    """Builds dependency graph from process definition."""

    def build(self, process: ProcessDefinition) -> DependencyGraph:
        """
        Build dependency graph from a process.

        Raises:
            DefinitionError: If a dependency expression does not parse
        """
        graph = DependencyGraph()

        for name in process.tasks:
            graph.add_node(name)

        for name, task in process.tasks.items():
            for predecessor in sorted(referenced_tasks(task.dependency())):
                graph.add_edge(predecessor, name)

        return graph


# ============================================================================
# TOPOLOGICAL SORT / CYCLE DETECTION
# ============================================================================

class TopologicalSorter:
    """Validates graph structure and provides topological ordering."""

    def validate(self, graph: DependencyGraph) -> Tuple[bool, List[str], Optional[str]]:
        """
        Validate that graph is acyclic (Kahn's algorithm).

        Returns:
            Tuple of (is_valid, sorted_nodes, error_message)
        """
        in_degree = {node: 0 for node in graph.nodes}

        for node in graph.nodes:
            for dep in graph.get_dependencies(node):
                if dep in in_degree:
                    in_degree[node] += 1

        # Start with tasks that have no dependencies
        queue = deque([node for node in graph.nodes if in_degree[node] == 0])
        sorted_nodes = []

        while queue:
            node = queue.popleft()
            sorted_nodes.append(node)

            for dependent in graph.get_dependents(node):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(sorted_nodes) != len(graph.nodes):
            remaining = [n for n in graph.nodes if n not in sorted_nodes]
            return False, sorted_nodes, f"Cycle detected involving tasks: {remaining}"

        return True, sorted_nodes, None


# ============================================================================
# CONDITION EVALUATOR
# ============================================================================

class ConditionEvaluator:
    """
    Evaluates guard expressions.

    Supports:
    - Comparison operators: ==, !=, <, >, <=, >=
    - Word operators: in, not_in, contains, starts_with, ends_with
    - Field access: vars.batch, args.0, tasks.extract.output.rows
    - Null checks: is_null(x), is_not_null(x)
    - Literals: true, false, null, numbers, quoted strings

    Unlike dependency expressions, a guard that cannot be evaluated (a
    type error comparing values, a malformed call) raises
    GuardEvaluationError; the engine fails that one task.
    """

    # Longest symbols first so "<=" is not split as "<"
    OPERATORS = {
        "==": operator.eq,
        "!=": operator.ne,
        "<=": operator.le,
        ">=": operator.ge,
        "<": operator.lt,
        ">": operator.gt,
        "not_in": lambda a, b: a not in b,
        "in": lambda a, b: a in b,
        "contains": lambda a, b: b in a if isinstance(a, (str, list, dict)) else False,
        "starts_with": lambda a, b: a.startswith(b) if isinstance(a, str) else False,
        "ends_with": lambda a, b: a.endswith(b) if isinstance(a, str) else False,
    }

    def evaluate(self, condition: Optional[str], context: Dict[str, Any]) -> bool:
        """
        Evaluate a guard expression.

        Args:
            condition: Guard string (e.g., "vars.batch > 0")
            context: Evaluation context (vars, args, tasks, env)

        Returns:
            True if the guard holds

        Raises:
            GuardEvaluationError: If the expression cannot be evaluated
        """
        if condition is None or not str(condition).strip():
            return True

        condition = str(condition).strip()
        try:
            lowered = condition.lower()
            if lowered == "true":
                return True
            if lowered == "false":
                return False

            if lowered.startswith("is_null(") or lowered.startswith("is_not_null("):
                if not condition.endswith(")"):
                    raise GuardEvaluationError(f"Unclosed call in guard '{condition}'")
                inner = condition[condition.index("(") + 1:-1].strip()
                value = self._get_value(inner, context)
                return value is None if lowered.startswith("is_null(") else value is not None

            return self._evaluate_comparison(condition, context)

        except GuardEvaluationError:
            raise
        except Exception as e:
            raise GuardEvaluationError(
                f"Failed to evaluate guard '{condition}': {e}"
            ) from e

    def _evaluate_comparison(self, condition: str, context: Dict[str, Any]) -> bool:
        """Evaluate `left op right`, or a bare truthy field."""
        for op_str, op_func in self.OPERATORS.items():
            if op_str[0].isalpha():
                pattern = rf"\s+{re.escape(op_str)}\s+"
            else:
                pattern = re.escape(op_str)
            parts = re.split(pattern, condition, maxsplit=1)

            if len(parts) == 2:
                left_value = self._parse_literal(parts[0].strip(), context)
                right_value = self._parse_literal(parts[1].strip(), context)
                return bool(op_func(left_value, right_value))

        # No operator found - treat as boolean field access
        return bool(self._parse_literal(condition, context))

    def _get_value(self, expr: str, context: Dict[str, Any]) -> Any:
        """Get value from context using dot notation (digits index lists)."""
        value: Any = context

        for part in expr.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            elif isinstance(value, (list, tuple)) and part.lstrip("-").isdigit():
                index = int(part)
                value = value[index] if -len(value) <= index < len(value) else None
            elif hasattr(value, part):
                value = getattr(value, part)
            else:
                return None

            if value is None:
                return None

        return value

    def _parse_literal(self, expr: str, context: Dict[str, Any]) -> Any:
        """Parse a literal value or field reference."""
        if (expr.startswith('"') and expr.endswith('"')) or \
           (expr.startswith("'") and expr.endswith("'")):
            return expr[1:-1]

        try:
            if "." in expr:
                return float(expr)
            return int(expr)
        except ValueError:
            pass

        lowered = expr.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        if lowered in ("null", "none"):
            return None

        return self._get_value(expr, context)


# ============================================================================
# MAIN EVALUATOR
# ============================================================================

class ProcessEvaluator:
    """
    Static validator for process definitions.

    Combines structural checks, action lookup and cycle detection.
    """

    def __init__(self):
        self.graph_builder = GraphBuilder()
        self.topo_sorter = TopologicalSorter()
        self.condition_evaluator = ConditionEvaluator()

    def collect_errors(
        self,
        process: ProcessDefinition,
        known_actions: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """
        Every problem with a process definition.

        Checks for:
        - Malformed dependency expressions
        - Unknown predecessors and self-references
        - Unknown action names (when known_actions is given)
        - Cycles
        """
        errors = process.validate_structure()

        if known_actions is not None:
            known: Set[str] = set(known_actions)
            for name, task in process.tasks.items():
                if task.action not in known:
                    errors.append(f"Task '{name}' uses unknown action '{task.action}'")

        if errors:
            return errors

        graph = self.graph_builder.build(process)
        is_valid, _, error = self.topo_sorter.validate(graph)
        if not is_valid:
            errors.append(error)

        return errors

    def validate_process(
        self,
        process: ProcessDefinition,
        known_actions: Optional[Iterable[str]] = None,
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate a process definition.

        Returns:
            Tuple of (is_valid, error_message)
        """
        errors = self.collect_errors(process, known_actions)
        if errors:
            return False, "; ".join(errors)
        return True, None

    def check(
        self,
        process: ProcessDefinition,
        known_actions: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """
        Validate and return the topological order.

        Raises:
            CyclicDependencyError: If tasks form a cycle
            DefinitionError: For any other definition problem
        """
        errors = self.collect_errors(process, known_actions)
        if errors:
            message = f"Invalid process '{process.process_id}': " + "; ".join(errors)
            if any(e.startswith("Cycle detected") for e in errors):
                raise CyclicDependencyError(message, errors)
            raise DefinitionError(message, errors)

        graph = self.graph_builder.build(process)
        _, order, _ = self.topo_sorter.validate(graph)
        return order


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_evaluator: Optional[ProcessEvaluator] = None


def get_evaluator() -> ProcessEvaluator:
    """Get shared evaluator instance."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ProcessEvaluator()
    return _evaluator


def validate_process(
    process: ProcessDefinition,
    known_actions: Optional[Iterable[str]] = None,
) -> Tuple[bool, Optional[str]]:
    """Convenience function to validate a process."""
    return get_evaluator().validate_process(process, known_actions)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DependencyGraph",
    "GraphBuilder",
    "TopologicalSorter",
    "ConditionEvaluator",
    "ProcessEvaluator",
    "get_evaluator",
    "validate_process",
]
