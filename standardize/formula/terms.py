"""
Typed terms extracted from a parsed formula.

A formula ``response ~ rhs`` is split into a response term, fixed terms,
random-effect grouping terms and at most one offset. Interactions
(``a:b``, ``a*b``) contribute each of their components as fixed terms and
are preserved in the formula tree for rewriting.

Recognized wrappers:
    log(x)          natural log before scaling
    scale_by(x ~ g) centering/scaling within levels of g
    poly(x, d)      scaled orthogonal polynomial of degree d
    offset(expr)    model offset

Any other call is an opaque continuous expression evaluated with
``pandas.DataFrame.eval``.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pandas.core.computation.ops import MATHOPS

from standardize.config.constants import (
    IDENTITY_FUNCTION,
    LOG_FUNCTION,
    OFFSET_FUNCTION,
    POLY_FUNCTION,
    SCALE_BY_FUNCTION,
)
from standardize.exceptions import FormulaError
from standardize.formula.nodes import (
    BinaryOp,
    Call,
    Node,
    Number,
    Paren,
    Tilde,
    UnaryMinus,
    Variable,
    deparse,
    iter_calls,
    iter_variables,
    to_eval_text,
)
from standardize.formula.parser import parse_expression

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class Role(Enum):
    """Role of a term in the model."""
    RESPONSE = 'response'
    FIXED = 'fixed'
    RANDOM_GROUP = 'random_group'
    OFFSET = 'offset'


class Wrapper(Enum):
    """Transformation wrapper around a term's variable."""
    NONE = 'none'
    GROUPED_SCALE = 'grouped_scale'
    LOG = 'log'
    POLYNOMIAL = 'polynomial'
    EXPRESSION = 'expression'


@dataclass(frozen=True)
class Term:
    """
    A single term of a formula.

    Attributes:
        raw: Canonical text of the term (its identity)
        role: Response, fixed, random grouping or offset
        wrapper: Wrapper applied to the inner variable
        variable: Inner variable name (None for opaque expressions)
        grouping: Grouping variable of a ``scale_by`` term
        degree: Degree of a ``poly`` term
        expression: ``DataFrame.eval`` text of an opaque expression
        node: Parsed node the term was built from
    """
    raw: str
    role: Role
    wrapper: Wrapper
    variable: Optional[str]
    node: Node
    grouping: Optional[str] = None
    degree: Optional[int] = None
    expression: Optional[str] = None

    @property
    def variables(self) -> Tuple[str, ...]:
        """Data columns the term reads."""
        names = list(dict.fromkeys(iter_variables(self.node)))
        return tuple(names)


@dataclass(frozen=True)
class ParsedFormula:
    """Result of parsing a formula: the tree plus its typed terms."""
    text: str
    tree: Tilde
    response: Term
    terms: Tuple[Term, ...]

    @property
    def fixed(self) -> Tuple[Term, ...]:
        return tuple(t for t in self.terms if t.role is Role.FIXED)

    @property
    def random(self) -> Tuple[Term, ...]:
        return tuple(t for t in self.terms if t.role is Role.RANDOM_GROUP)

    @property
    def offset(self) -> Optional[Term]:
        for t in self.terms:
            if t.role is Role.OFFSET:
                return t
        return None

    @property
    def variables(self) -> Tuple[str, ...]:
        """Every data column named by the formula, in order of appearance."""
        names = list(self.response.variables)
        for t in self.terms:
            names.extend(t.variables)
        return tuple(dict.fromkeys(names))


# =============================================================================
# TERM EXTRACTION
# =============================================================================

def _is_intercept(node: Node) -> bool:
    return isinstance(node, Number) and node.value in (0.0, 1.0)


def _single_argument(call: Call) -> Node:
    if len(call.args) != 1 or call.kwargs:
        raise FormulaError(f"{call.name}() takes exactly one argument: '{deparse(call)}'")
    return call.args[0]


def _expression_term(node: Node, role: Role) -> Term:
    try:
        expression = to_eval_text(node)
    except ValueError as e:
        raise FormulaError(str(e)) from e
    if not list(iter_variables(node)):
        raise FormulaError(f"Expression '{deparse(node)}' does not reference any variable")
    unsupported = [
        name for name in dict.fromkeys(iter_calls(node))
        if name != IDENTITY_FUNCTION and name not in MATHOPS
    ]
    if unsupported:
        raise FormulaError(
            f"Unsupported function(s) {unsupported} in '{deparse(node)}'; "
            f"expressions may use {sorted(MATHOPS)}"
        )
    return Term(deparse(node), role, Wrapper.EXPRESSION, None, node, expression=expression)


def _poly_degree(call: Call) -> int:
    if len(call.args) == 2 and not call.kwargs:
        degree_node = call.args[1]
    elif len(call.args) == 1 and [k for k, _ in call.kwargs] == ['degree']:
        degree_node = call.kwarg('degree')
    else:
        raise FormulaError(
            f"poly() takes a variable and a degree, e.g. poly(x, 2): '{deparse(call)}'"
        )
    if not isinstance(degree_node, Number) or not degree_node.value.is_integer() \
            or degree_node.value < 1:
        raise FormulaError(f"poly() degree must be a positive integer: '{deparse(call)}'")
    return int(degree_node.value)


def atomic_term(node: Node, role: Role) -> Term:
    """
    Build a Term from a single (non-operator) node.

    Raises:
        FormulaError: If the node is not a variable or a supported call
    """
    raw = deparse(node)
    if isinstance(node, Variable):
        return Term(raw, role, Wrapper.NONE, node.name, node)

    if not isinstance(node, Call):
        raise FormulaError(f"Unsupported term '{raw}'")

    if node.name == LOG_FUNCTION:
        inner = _single_argument(node)
        if isinstance(inner, Variable):
            return Term(raw, role, Wrapper.LOG, inner.name, node)
        return _expression_term(node, role)

    if node.name == SCALE_BY_FUNCTION:
        inner = _single_argument(node)
        if not (isinstance(inner, Tilde) and isinstance(inner.left, Variable)
                and isinstance(inner.right, Variable)):
            raise FormulaError(
                f"scale_by() expects 'variable ~ grouping_variable': '{raw}'"
            )
        return Term(
            raw, role, Wrapper.GROUPED_SCALE, inner.left.name, node,
            grouping=inner.right.name
        )

    if node.name == POLY_FUNCTION:
        if role is Role.RESPONSE:
            raise FormulaError(f"poly() cannot be used on the response: '{raw}'")
        degree = _poly_degree(node)
        inner = node.args[0]
        if not isinstance(inner, Variable):
            raise FormulaError(f"poly() expects a bare variable: '{raw}'")
        return Term(raw, role, Wrapper.POLYNOMIAL, inner.name, node, degree=degree)

    if node.name == OFFSET_FUNCTION:
        raise FormulaError(f"offset() is only allowed as a top-level term: '{raw}'")

    return _expression_term(node, role)


def _offset_term(call: Call) -> Term:
    inner = _single_argument(call)
    if isinstance(inner, Variable):
        return Term(deparse(call), Role.OFFSET, Wrapper.NONE, inner.name, call)
    if isinstance(inner, Call) and inner.name == LOG_FUNCTION \
            and isinstance(_single_argument(inner), Variable):
        return Term(deparse(call), Role.OFFSET, Wrapper.LOG, inner.args[0].name, call)
    if isinstance(inner, Call) and inner.name in (SCALE_BY_FUNCTION, POLY_FUNCTION):
        raise FormulaError(f"{inner.name}() cannot be used inside offset(): '{deparse(call)}'")
    term = _expression_term(inner, Role.OFFSET)
    return Term(
        deparse(call), Role.OFFSET, Wrapper.EXPRESSION, None, call,
        expression=term.expression
    )


class _TermCollector:
    """Walks the right-hand side of a formula and collects typed terms."""

    def __init__(self, text: str):
        self.text = text
        self.terms: List[Term] = []
        self._roles: Dict[str, Role] = {}

    def add(self, term: Term) -> None:
        seen = self._roles.get(term.raw)
        if seen is None:
            self._roles[term.raw] = term.role
            self.terms.append(term)
        elif seen is not term.role:
            raise FormulaError(
                f"'{term.raw}' is used both as a {seen.value} term and as a "
                f"{term.role.value} term in '{self.text}'"
            )

    def collect(self, node: Node, in_random: bool = False) -> None:
        if isinstance(node, BinaryOp) and node.op == '+':
            self.collect(node.left, in_random)
            self.collect(node.right, in_random)
        elif isinstance(node, BinaryOp) and node.op == '-':
            self.collect(node.left, in_random)
            if not _is_intercept(node.right):
                raise FormulaError(
                    f"Only the intercept can be removed with '-': '{deparse(node)}'"
                )
        elif isinstance(node, UnaryMinus):
            if not _is_intercept(node.operand):
                raise FormulaError(f"Unsupported term '{deparse(node)}'")
        elif isinstance(node, Number):
            if not _is_intercept(node):
                raise FormulaError(f"Numeric term '{node.text}' is not an intercept marker")
        elif isinstance(node, Paren):
            if in_random:
                raise FormulaError(f"Nested random-effect terms are not supported: '{deparse(node)}'")
            self._random(node)
        elif isinstance(node, BinaryOp) and node.op in (':', '*'):
            self._interaction(node)
        elif isinstance(node, BinaryOp):
            raise FormulaError(f"Unsupported operator '{node.op}' in term '{deparse(node)}'")
        elif isinstance(node, Tilde):
            raise FormulaError(f"Unexpected '~' in '{self.text}'")
        elif isinstance(node, Call) and node.name == OFFSET_FUNCTION:
            if in_random:
                raise FormulaError(f"offset() cannot be a random-effect term: '{deparse(node)}'")
            self.add(_offset_term(node))
        else:
            self.add(atomic_term(node, Role.FIXED))

    def _random(self, paren: Paren) -> None:
        body = paren.body
        if not (isinstance(body, BinaryOp) and body.op == '|'):
            raise FormulaError(
                f"Parenthesized terms must be random effects like (1 | group): '{deparse(paren)}'"
            )
        if isinstance(body.left, BinaryOp) and body.left.op == '|':
            raise FormulaError(f"Malformed random-effect term '{deparse(paren)}'")
        if not isinstance(body.right, Variable):
            raise FormulaError(
                f"Random-effect grouping must be a single variable: '{deparse(paren)}'"
            )
        self.collect(body.left, in_random=True)
        self.add(atomic_term(body.right, Role.RANDOM_GROUP))

    def _interaction(self, node: Node) -> None:
        if isinstance(node, BinaryOp) and node.op in (':', '*'):
            self._interaction(node.left)
            self._interaction(node.right)
        elif isinstance(node, (Variable, Call)):
            if isinstance(node, Call) and node.name == OFFSET_FUNCTION:
                raise FormulaError(f"offset() cannot be part of an interaction: '{deparse(node)}'")
            self.add(atomic_term(node, Role.FIXED))
        else:
            raise FormulaError(f"Unsupported interaction component '{deparse(node)}'")


def parse_formula(text: str) -> ParsedFormula:
    """
    Parse a formula string into typed terms.

    Args:
        text: Formula such as ``"y ~ log(x) + scale_by(z ~ g) + f + (1 | g)"``

    Returns:
        ParsedFormula with the response and the ordered, de-duplicated terms

    Raises:
        FormulaError: On malformed or unsupported syntax
    """
    tree = parse_expression(text)
    if not isinstance(tree, Tilde) or tree.left is None:
        raise FormulaError(f"Formula must have the form 'response ~ terms': '{text}'")

    response_node = tree.left
    if isinstance(response_node, Call) and response_node.name == OFFSET_FUNCTION:
        raise FormulaError(f"offset() cannot be the response: '{text}'")
    if not isinstance(response_node, (Variable, Call)):
        raise FormulaError(f"Unsupported response '{deparse(response_node)}' in '{text}'")
    response = atomic_term(response_node, Role.RESPONSE)

    collector = _TermCollector(text)
    collector.collect(tree.right)
    offsets = [t for t in collector.terms if t.role is Role.OFFSET]
    if len(offsets) > 1:
        raise FormulaError(f"Only one offset() term is supported: '{text}'")
    if response.raw in {t.raw for t in collector.terms}:
        raise FormulaError(f"The response '{response.raw}' also appears as a predictor")

    parsed = ParsedFormula(text, tree, response, tuple(collector.terms))
    logger.debug(
        f"Formula '{text}': response={response.raw}, "
        f"{len(parsed.fixed)} fixed, {len(parsed.random)} random, "
        f"offset={parsed.offset.raw if parsed.offset else None}"
    )
    return parsed


# =============================================================================
# STRUCTURE HELPERS
# =============================================================================

def _summands(node: Node) -> List[Node]:
    if isinstance(node, BinaryOp) and node.op in ('+', '-'):
        left = _summands(node.left)
        return left + ([] if node.op == '-' else _summands(node.right))
    return [node]


def fixed_terms(formula: str) -> List[str]:
    """Fixed-effect terms of a formula (interactions kept whole, intercept markers dropped)."""
    tree = parse_formula(formula).tree
    return [
        deparse(n) for n in _summands(tree.right)
        if not isinstance(n, (Paren, Number, UnaryMinus))
    ]


def random_terms(formula: str) -> List[str]:
    """Random-effect terms of a formula, e.g. ``['(1 | subject)']``."""
    tree = parse_formula(formula).tree
    return [deparse(n) for n in _summands(tree.right) if isinstance(n, Paren)]


def has_random(formula: str) -> bool:
    """Whether the formula contains any random-effect term."""
    return bool(random_terms(formula))
