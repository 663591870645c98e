"""
Expression tree produced by the formula parser.

Every node renders back to canonical text with ``deparse``; that text is the
identity of a term throughout the package (descriptor keys, name mapping and
formula rewriting all use it).
"""
import keyword
import re
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

from standardize.config.constants import IDENTITY_FUNCTION

_PLAIN_NAME = re.compile(r'^[A-Za-z.][A-Za-z0-9._]*$')
_PLAIN_PY_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class Number:
    text: str

    @property
    def value(self) -> float:
        return float(self.text)


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple['Node', ...] = ()
    kwargs: Tuple[Tuple[str, 'Node'], ...] = ()

    def kwarg(self, key: str) -> Optional['Node']:
        for k, v in self.kwargs:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Node'
    right: 'Node'


@dataclass(frozen=True)
class UnaryMinus:
    operand: 'Node'


@dataclass(frozen=True)
class Paren:
    body: 'Node'


@dataclass(frozen=True)
class Tilde:
    left: Optional['Node']
    right: 'Node'


Node = Union[Variable, Number, Call, BinaryOp, UnaryMinus, Paren, Tilde]

# Operators rendered without surrounding spaces
_TIGHT_OPERATORS = {':', '^'}


def render_name(name: str) -> str:
    """Render a variable name, backtick-quoting it when it is not a plain name."""
    if _PLAIN_NAME.match(name) and name != '.':
        return name
    return f"`{name}`"


def deparse(node: Node) -> str:
    """Render a node as canonical formula text."""
    if isinstance(node, Variable):
        return render_name(node.name)
    if isinstance(node, Number):
        return node.text
    if isinstance(node, Call):
        parts = [deparse(a) for a in node.args]
        parts += [f"{k} = {deparse(v)}" for k, v in node.kwargs]
        return f"{node.name}({', '.join(parts)})"
    if isinstance(node, BinaryOp):
        if node.op in _TIGHT_OPERATORS:
            return f"{deparse(node.left)}{node.op}{deparse(node.right)}"
        return f"{deparse(node.left)} {node.op} {deparse(node.right)}"
    if isinstance(node, UnaryMinus):
        return f"-{deparse(node.operand)}"
    if isinstance(node, Paren):
        return f"({deparse(node.body)})"
    if isinstance(node, Tilde):
        if node.left is None:
            return f"~ {deparse(node.right)}"
        return f"{deparse(node.left)} ~ {deparse(node.right)}"
    raise TypeError(f"Unknown node type: {type(node).__name__}")


def iter_calls(node: Node) -> Iterator[str]:
    """Yield the function names called anywhere inside a node, outermost first."""
    if isinstance(node, Call):
        yield node.name
        for a in node.args:
            yield from iter_calls(a)
        for _, v in node.kwargs:
            yield from iter_calls(v)
    elif isinstance(node, BinaryOp):
        yield from iter_calls(node.left)
        yield from iter_calls(node.right)
    elif isinstance(node, UnaryMinus):
        yield from iter_calls(node.operand)
    elif isinstance(node, Paren):
        yield from iter_calls(node.body)
    elif isinstance(node, Tilde):
        if node.left is not None:
            yield from iter_calls(node.left)
        yield from iter_calls(node.right)


def iter_variables(node: Node) -> Iterator[str]:
    """Yield the data variable names referenced by a node (function names excluded)."""
    if isinstance(node, Variable):
        yield node.name
    elif isinstance(node, Call):
        for a in node.args:
            yield from iter_variables(a)
        for _, v in node.kwargs:
            yield from iter_variables(v)
    elif isinstance(node, BinaryOp):
        yield from iter_variables(node.left)
        yield from iter_variables(node.right)
    elif isinstance(node, UnaryMinus):
        yield from iter_variables(node.operand)
    elif isinstance(node, Paren):
        yield from iter_variables(node.body)
    elif isinstance(node, Tilde):
        if node.left is not None:
            yield from iter_variables(node.left)
        yield from iter_variables(node.right)


def to_eval_text(node: Node) -> str:
    """
    Render a node as a ``pandas.DataFrame.eval`` expression.

    ``I(...)`` is unwrapped and ``^`` becomes ``**``. Formula-only syntax
    (``~``, ``|``, ``:``) cannot be evaluated and raises ValueError.
    """
    if isinstance(node, Variable):
        if _PLAIN_PY_NAME.match(node.name) and not keyword.iskeyword(node.name):
            return node.name
        return f"`{node.name}`"
    if isinstance(node, Number):
        return node.text
    if isinstance(node, Call):
        if node.name == IDENTITY_FUNCTION and len(node.args) == 1 and not node.kwargs:
            return f"({to_eval_text(node.args[0])})"
        parts = [to_eval_text(a) for a in node.args]
        parts += [f"{k}={to_eval_text(v)}" for k, v in node.kwargs]
        return f"{node.name}({', '.join(parts)})"
    if isinstance(node, BinaryOp):
        if node.op in ('+', '-', '*', '/'):
            return f"({to_eval_text(node.left)} {node.op} {to_eval_text(node.right)})"
        if node.op == '^':
            return f"({to_eval_text(node.left)} ** {to_eval_text(node.right)})"
        raise ValueError(f"Operator '{node.op}' cannot be evaluated: {deparse(node)}")
    if isinstance(node, UnaryMinus):
        return f"(-{to_eval_text(node.operand)})"
    if isinstance(node, Paren):
        return f"({to_eval_text(node.body)})"
    raise ValueError(f"Expression cannot be evaluated: {deparse(node)}")
