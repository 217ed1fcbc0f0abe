# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# STATUS: Core - Engine components
# PURPOSE: Dependency evaluation, template resolution, process execution
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- expressions: AND/OR dependency expressions and their evaluation
- evaluator: static process validation and guard evaluation
- templates: Jinja2-based parameter resolution
- process: the task graph engine that runs one process instance
"""

from orchestrator.engine.expressions import (
    Term,
    And,
    Or,
    Expr,
    evaluate,
    iter_terms,
    referenced_tasks,
    parse_after,
    as_expression,
)
from orchestrator.engine.templates import (
    TemplateResolver,
    TemplateContext,
    TaskContext,
    get_resolver,
    resolve_params,
)
from orchestrator.engine.evaluator import (
    DependencyGraph,
    GraphBuilder,
    TopologicalSorter,
    ConditionEvaluator,
    ProcessEvaluator,
    get_evaluator,
    validate_process,
)
from orchestrator.engine.process import (
    ProcessLoader,
    ProcessResult,
    ProcessContext,
    TaskGraphEngine,
)

__all__ = [
    # Expressions
    "Term",
    "And",
    "Or",
    "Expr",
    "evaluate",
    "iter_terms",
    "referenced_tasks",
    "parse_after",
    "as_expression",
    # Templates
    "TemplateResolver",
    "TemplateContext",
    "TaskContext",
    "get_resolver",
    "resolve_params",
    # Evaluator
    "DependencyGraph",
    "GraphBuilder",
    "TopologicalSorter",
    "ConditionEvaluator",
    "ProcessEvaluator",
    "get_evaluator",
    "validate_process",
    # Process execution
    "ProcessLoader",
    "ProcessResult",
    "ProcessContext",
    "TaskGraphEngine",
]
