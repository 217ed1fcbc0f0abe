# ============================================================================
# DEPENDENCY EXPRESSIONS
# ============================================================================
# STATUS: Core - Dependency expression tree and parser
# PURPOSE: Represent and evaluate AND/OR/SUCCEEDS/FAILS/COMPLETES predicates
# CREATED: 18 OCT 2026
# ============================================================================
"""
Dependency Expressions

A task's dependency is a small expression tree:

    Term("extract")                          # extract SUCCEEDS
    Term("extract", Outcome.FAILS)
    And((Term("a"), Term("b", Outcome.COMPLETES)))
    Or((Term("a", Outcome.FAILS), Term("b", Outcome.FAILS)))

evaluate() is a pure function over the statuses known so far and uses
three-valued logic:

    True   dependency holds, the task may become READY
    False  dependency can never hold, the task is SKIPPED
    None   some referenced predecessor is not terminal yet, keep WAITING

Text form (the YAML `after:` key):

    after: "extract SUCCEEDS AND (load FAILS OR audit COMPLETES)"

AND binds tighter than OR. A bare task name means SUCCEEDS. A leading
AFTER keyword is accepted.
"""

import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Set, Tuple, Union

from core.contracts import Outcome, TaskStatus
from core.errors import DefinitionError


# ============================================================================
# EXPRESSION TREE
# ============================================================================

@dataclass(frozen=True)
class Term:
    """A predecessor task and the terminal condition required of it."""
    task: str
    outcome: Outcome = Outcome.SUCCEEDS

    def __str__(self) -> str:
        return f"{self.task} {self.outcome.value.upper()}"


@dataclass(frozen=True)
class And:
    """All operands must hold."""
    operands: Tuple["Expr", ...]

    def __str__(self) -> str:
        return "(" + " AND ".join(str(op) for op in self.operands) + ")"


@dataclass(frozen=True)
class Or:
    """At least one operand must hold."""
    operands: Tuple["Expr", ...]

    def __str__(self) -> str:
        return "(" + " OR ".join(str(op) for op in self.operands) + ")"


Expr = Union[Term, And, Or]


# ============================================================================
# EVALUATION
# ============================================================================

def evaluate(expr: Expr, statuses: Mapping[str, TaskStatus]) -> Optional[bool]:
    """
    Evaluate a dependency expression against known task statuses.

    Args:
        expr: Dependency expression
        statuses: task name -> current status (missing means not terminal)

    Returns:
        True, False, or None when the result is not yet decided
    """
    if isinstance(expr, Term):
        status = statuses.get(expr.task)
        if status is None or not status.is_terminal():
            return None
        return expr.outcome.is_met_by(status)

    if isinstance(expr, And):
        undecided = False
        for operand in expr.operands:
            value = evaluate(operand, statuses)
            if value is False:
                return False
            if value is None:
                undecided = True
        return None if undecided else True

    if isinstance(expr, Or):
        undecided = False
        for operand in expr.operands:
            value = evaluate(operand, statuses)
            if value is True:
                return True
            if value is None:
                undecided = True
        return None if undecided else False

    raise TypeError(f"Not a dependency expression: {expr!r}")


def iter_terms(expr: Expr) -> List[Term]:
    """Flatten an expression into its terms, in textual order."""
    if isinstance(expr, Term):
        return [expr]
    terms: List[Term] = []
    for operand in expr.operands:
        terms.extend(iter_terms(operand))
    return terms


def referenced_tasks(expr: Optional[Expr]) -> Set[str]:
    """Names of every predecessor referenced by an expression."""
    if expr is None:
        return set()
    return {term.task for term in iter_terms(expr)}


# ============================================================================
# PARSER
# ============================================================================

_TOKEN_PATTERN = re.compile(r"\s*(\(|\)|[A-Za-z_][A-Za-z0-9_.\-]*)")

_OUTCOME_WORDS = {
    "SUCCEEDS": Outcome.SUCCEEDS,
    "FAILS": Outcome.FAILS,
    "COMPLETES": Outcome.COMPLETES,
}


def _tokenize(text: str) -> List[str]:
    tokens = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if not match:
            raise DefinitionError(
                f"Invalid character in dependency '{text}' at position {position}"
            )
        tokens.append(match.group(1))
        position = match.end()
    return tokens


class _DependencyParser:
    """Recursive descent: or_expr := and_expr (OR and_expr)*."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.position = 0

    def parse(self) -> Expr:
        if self._peek_word("AFTER"):
            self.position += 1
        if not self.tokens[self.position:]:
            raise DefinitionError(f"Empty dependency expression: '{self.text}'")
        expr = self._or_expr()
        if self.position != len(self.tokens):
            raise DefinitionError(
                f"Unexpected '{self.tokens[self.position]}' in dependency '{self.text}'"
            )
        return expr

    def _peek(self) -> Optional[str]:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def _peek_word(self, word: str) -> bool:
        token = self._peek()
        return token is not None and token.upper() == word

    def _or_expr(self) -> Expr:
        operands = [self._and_expr()]
        while self._peek_word("OR"):
            self.position += 1
            operands.append(self._and_expr())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def _and_expr(self) -> Expr:
        operands = [self._primary()]
        while self._peek_word("AND"):
            self.position += 1
            operands.append(self._primary())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def _primary(self) -> Expr:
        token = self._peek()
        if token is None:
            raise DefinitionError(f"Dependency '{self.text}' ends unexpectedly")

        if token == "(":
            self.position += 1
            expr = self._or_expr()
            if self._peek() != ")":
                raise DefinitionError(f"Missing ')' in dependency '{self.text}'")
            self.position += 1
            return expr

        if token == ")" or token.upper() in ("AND", "OR") or token.upper() in _OUTCOME_WORDS:
            raise DefinitionError(f"Expected a task name but found '{token}' in '{self.text}'")

        self.position += 1
        outcome = Outcome.SUCCEEDS
        following = self._peek()
        if following is not None and following.upper() in _OUTCOME_WORDS:
            outcome = _OUTCOME_WORDS[following.upper()]
            self.position += 1
        return Term(token, outcome)


def parse_after(text: str) -> Expr:
    """
    Parse dependency text into an expression tree.

    Raises:
        DefinitionError: On syntax errors
    """
    return _DependencyParser(text).parse()


def as_expression(value: Union[str, Expr, List[str], None]) -> Optional[Expr]:
    """
    Normalize the accepted `after` forms into an expression.

    A list of names is shorthand for AND of SUCCEEDS terms.
    """
    if value is None:
        return None
    if isinstance(value, (Term, And, Or)):
        return value
    if isinstance(value, str):
        return parse_after(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        operands = tuple(as_expression(item) for item in value)
        return operands[0] if len(operands) == 1 else And(operands)
    raise DefinitionError(f"Unsupported dependency value: {value!r}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "Term",
    "And",
    "Or",
    "Expr",
    "evaluate",
    "iter_terms",
    "referenced_tasks",
    "parse_after",
    "as_expression",
]
