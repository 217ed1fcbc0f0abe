# ============================================================================
# DEPENDENCY EXPRESSION AND GUARD TESTS
# ============================================================================
# STATUS: Tests - Dependency predicates, guards, templates, static checks
# PURPOSE: Verify three-valued dependency logic and process validation
# CREATED: 18 OCT 2026
# ============================================================================
"""
Dependency Expression and Guard Tests

Covers:
1. Parsing `after:` text (precedence, parentheses, AFTER keyword, lists)
2. Three-valued evaluation (undecided / holds / can never hold)
3. Guard evaluation (comparisons, word operators, null checks, errors)
4. Template resolution into native values
5. Static validation: unknown predecessors, unknown actions, cycles

Run with:
    pytest tests/test_expressions.py -v
"""

import pytest

from core.contracts import Outcome, TaskStatus
from core.errors import (
    CyclicDependencyError,
    DefinitionError,
    GuardEvaluationError,
    TemplateResolutionError,
)
from core.models import ProcessDefinition
from orchestrator.engine.evaluator import ConditionEvaluator, get_evaluator
from orchestrator.engine.expressions import (
    And,
    Or,
    Term,
    as_expression,
    evaluate,
    parse_after,
    referenced_tasks,
)
from orchestrator.engine.templates import TemplateResolver

S = TaskStatus


# ============================================================================
# PARSING
# ============================================================================

class TestParseAfter:

    def test_bare_name_means_succeeds(self):
        assert parse_after("extract") == Term("extract", Outcome.SUCCEEDS)

    def test_outcomes(self):
        assert parse_after("load FAILS") == Term("load", Outcome.FAILS)
        assert parse_after("load completes") == Term("load", Outcome.COMPLETES)

    def test_and_binds_tighter_than_or(self):
        expr = parse_after("a OR b AND c")
        assert expr == Or((Term("a"), And((Term("b"), Term("c")))))

    def test_parentheses(self):
        expr = parse_after("(a OR b) AND c FAILS")
        assert expr == And((Or((Term("a"), Term("b"))), Term("c", Outcome.FAILS)))

    def test_leading_after_keyword(self):
        assert parse_after("AFTER a SUCCEEDS") == Term("a")

    def test_list_is_and_of_succeeds(self):
        assert as_expression(["a", "b"]) == And((Term("a"), Term("b")))
        assert as_expression(["a"]) == Term("a")
        assert as_expression([]) is None
        assert as_expression(None) is None

    def test_referenced_tasks(self):
        assert referenced_tasks(parse_after("a AND (b FAILS OR c COMPLETES)")) == {"a", "b", "c"}

    @pytest.mark.parametrize("text", [
        "",
        "AFTER",
        "a AND",
        "(a OR b",
        "a b",
        "FAILS",
        "a OR OR b",
        "a; b",
    ])
    def test_syntax_errors(self, text):
        with pytest.raises(DefinitionError):
            parse_after(text)


# ============================================================================
# EVALUATION
# ============================================================================

class TestEvaluate:

    def test_term_undecided_until_terminal(self):
        expr = Term("a")
        assert evaluate(expr, {}) is None
        assert evaluate(expr, {"a": S.RUNNING}) is None
        assert evaluate(expr, {"a": S.SUCCEEDED}) is True
        assert evaluate(expr, {"a": S.FAILED}) is False

    def test_fails_and_completes(self):
        assert evaluate(Term("a", Outcome.FAILS), {"a": S.FAILED}) is True
        assert evaluate(Term("a", Outcome.FAILS), {"a": S.SKIPPED}) is False
        assert evaluate(Term("a", Outcome.COMPLETES), {"a": S.FAILED}) is True
        assert evaluate(Term("a", Outcome.COMPLETES), {"a": S.SKIPPED}) is True
        assert evaluate(Term("a", Outcome.COMPLETES), {"a": S.TERMINATED}) is False

    def test_and_false_as_soon_as_one_operand_fails(self):
        expr = parse_after("a AND b")
        assert evaluate(expr, {"a": S.FAILED}) is False
        assert evaluate(expr, {"a": S.SUCCEEDED}) is None
        assert evaluate(expr, {"a": S.SUCCEEDED, "b": S.SUCCEEDED}) is True

    def test_or_true_as_soon_as_one_operand_holds(self):
        expr = parse_after("a FAILS OR b FAILS")
        assert evaluate(expr, {"b": S.FAILED}) is True
        assert evaluate(expr, {"a": S.SUCCEEDED}) is None
        assert evaluate(expr, {"a": S.SUCCEEDED, "b": S.SUCCEEDED}) is False


# ============================================================================
# GUARDS
# ============================================================================

@pytest.fixture
def guard_context():
    return {
        "vars": {"batch": 5, "mode": "full", "tables": ["orders", "items"], "empty": None},
        "args": ["2026-10-18"],
        "tasks": {"extract": {"status": "succeeded", "output": {"rows": 1200}}},
        "env": {},
    }


class TestConditionEvaluator:

    def test_comparisons(self, guard_context):
        evaluator = ConditionEvaluator()
        assert evaluator.evaluate("vars.batch > 0", guard_context)
        assert evaluator.evaluate("vars.batch <= 5", guard_context)
        assert not evaluator.evaluate("vars.batch >= 6", guard_context)
        assert evaluator.evaluate("vars.mode == 'full'", guard_context)
        assert evaluator.evaluate("vars.mode != 'delta'", guard_context)
        assert evaluator.evaluate("tasks.extract.output.rows == 1200", guard_context)
        assert evaluator.evaluate("args.0 == '2026-10-18'", guard_context)

    def test_word_operators(self, guard_context):
        evaluator = ConditionEvaluator()
        assert evaluator.evaluate("vars.tables contains 'orders'", guard_context)
        assert evaluator.evaluate("vars.mode in 'full,delta'", guard_context)
        assert evaluator.evaluate("vars.mode starts_with 'fu'", guard_context)

    def test_null_checks_and_literals(self, guard_context):
        evaluator = ConditionEvaluator()
        assert evaluator.evaluate("is_null(vars.empty)", guard_context)
        assert evaluator.evaluate("is_not_null(vars.batch)", guard_context)
        assert evaluator.evaluate(None, guard_context)
        assert evaluator.evaluate("true", guard_context)
        assert not evaluator.evaluate("false", guard_context)
        assert not evaluator.evaluate("vars.missing", guard_context)

    def test_uncomparable_values_raise(self, guard_context):
        with pytest.raises(GuardEvaluationError):
            ConditionEvaluator().evaluate("vars.mode > 3", guard_context)

    def test_unclosed_call_raises(self, guard_context):
        with pytest.raises(GuardEvaluationError):
            ConditionEvaluator().evaluate("is_null(vars.empty", guard_context)


# ============================================================================
# TEMPLATES
# ============================================================================

class TestTemplateResolver:

    class _Context:
        def __init__(self, data):
            self._data = data

        def to_dict(self):
            return self._data

    def test_single_expression_keeps_native_type(self, guard_context):
        resolver = TemplateResolver()
        params = {
            "rows": "{{ tasks.extract.output.rows }}",
            "tables": "{{ vars.tables }}",
            "label": "batch {{ vars.batch }} on {{ args[0] }}",
        }
        resolved = resolver.resolve(params, self._Context(guard_context))
        assert resolved["rows"] == 1200
        assert resolved["tables"] == ["orders", "items"]
        assert resolved["label"] == "batch 5 on 2026-10-18"

    def test_undefined_variable_raises(self, guard_context):
        with pytest.raises(TemplateResolutionError):
            TemplateResolver().resolve({"x": "{{ vars.nope }}"}, self._Context(guard_context))


# ============================================================================
# STATIC VALIDATION
# ============================================================================

def _process(tasks):
    return ProcessDefinition(process_id="p", tasks=tasks)


class TestProcessCheck:

    def test_topological_order(self):
        process = _process({
            "load": {"action": "echo", "after": "extract"},
            "extract": "echo",
            "audit": {"action": "echo", "after": "load COMPLETES AND extract"},
        })
        order = get_evaluator().check(process, known_actions=["echo"])
        assert order.index("extract") < order.index("load") < order.index("audit")

    def test_unknown_predecessor(self):
        process = _process({"load": {"action": "echo", "after": "extrakt"}})
        with pytest.raises(DefinitionError) as exc_info:
            get_evaluator().check(process)
        assert "extrakt" in str(exc_info.value)

    def test_self_reference(self):
        process = _process({"load": {"action": "echo", "after": "load FAILS"}})
        with pytest.raises(DefinitionError):
            get_evaluator().check(process)

    def test_unknown_action(self):
        process = _process({"load": "bulk_copy"})
        with pytest.raises(DefinitionError) as exc_info:
            get_evaluator().check(process, known_actions=["echo"])
        assert "bulk_copy" in str(exc_info.value)

    def test_cycle(self):
        process = _process({
            "a": {"action": "echo", "after": "c"},
            "b": {"action": "echo", "after": "a"},
            "c": {"action": "echo", "after": "b FAILS"},
        })
        with pytest.raises(CyclicDependencyError):
            get_evaluator().check(process)

    def test_malformed_dependency(self):
        process = _process({"a": "echo", "b": {"action": "echo", "after": "a AND"}})
        with pytest.raises(DefinitionError):
            get_evaluator().check(process)
