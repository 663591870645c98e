"""
Tokenizer and recursive-descent parser for regression formulas.

Grammar (lowest precedence first)::

    formula     := bar ['~' bar]
    bar         := sum ('|' sum)*
    sum         := product (('+' | '-') product)*
    product     := interaction (('*' | '/') interaction)*
    interaction := unary (':' unary)*
    unary       := '-' unary | '+' unary | power
    power       := atom ['^' unary]
    atom        := NAME | NAME '(' args ')' | NUMBER | '(' formula ')'
    args        := [arg (',' arg)*]
    arg         := NAME '=' formula | formula

The parser only builds the tree; which constructs are allowed where is
decided by ``standardize.formula.terms``.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

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
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_TOKEN_SPEC = [
    ('NUMBER', r'(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?(?![A-Za-z_.])'),
    ('NAME', r'[A-Za-z.][A-Za-z0-9._]*|_[A-Za-z0-9._]*'),
    ('QUOTED', r'`[^`]*`'),
    ('OP', r'\|\||%[^%]*%|\*\*|[~|+\-*/:^]'),
    ('LPAREN', r'\('),
    ('RPAREN', r'\)'),
    ('COMMA', r','),
    ('EQUALS', r'='),
    ('SKIP', r'\s+'),
    ('MISMATCH', r'.'),
]
_TOKEN_RE = re.compile('|'.join(f'(?P<{name}>{pattern})' for name, pattern in _TOKEN_SPEC))


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    pos: int


def tokenize(text: str) -> List[Token]:
    """
    Split formula text into tokens.

    Raises:
        FormulaError: On characters or operators outside the formula vocabulary
    """
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        kind = match.lastgroup
        value = match.group()
        pos = match.start()
        if kind == 'SKIP':
            continue
        if kind == 'MISMATCH':
            raise FormulaError(f"Unexpected character {value!r} at position {pos} in '{text}'")
        if kind == 'OP' and (value in ('||', '**') or value.startswith('%')):
            raise FormulaError(f"Unsupported operator '{value}' at position {pos} in '{text}'")
        if kind == 'QUOTED':
            name = value[1:-1]
            if not name:
                raise FormulaError(f"Empty quoted name at position {pos} in '{text}'")
            tokens.append(Token('NAME', name, pos))
            continue
        tokens.append(Token(kind, value, pos))
    tokens.append(Token('END', '', len(text)))
    return tokens


class FormulaParser:
    """
    Recursive-descent parser turning formula text into an expression tree.

    Example:
        >>> FormulaParser("y ~ x + (1 | g)").parse()
        Tilde(left=Variable(name='y'), right=BinaryOp(op='+', ...))
    """

    def __init__(self, text: str):
        if not isinstance(text, str) or not text.strip():
            raise FormulaError(f"Formula must be a non-empty string, got {text!r}")
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    # ------------------------------------------------------------------
    # token helpers
    # ------------------------------------------------------------------

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept_op(self, *ops: str) -> Optional[Token]:
        token = self._peek()
        if token.kind == 'OP' and token.value in ops:
            return self._advance()
        return None

    def _expect(self, kind: str) -> Token:
        token = self._peek()
        if token.kind != kind:
            raise self._error(token, f"expected {kind.lower()}")
        return self._advance()

    def _error(self, token: Token, message: str) -> FormulaError:
        found = 'end of formula' if token.kind == 'END' else repr(token.value)
        return FormulaError(
            f"Invalid formula '{self.text}': {message}, found {found} at position {token.pos}"
        )

    # ------------------------------------------------------------------
    # grammar
    # ------------------------------------------------------------------

    def parse(self) -> Node:
        """Parse the whole formula; the result is a Tilde unless no '~' is present."""
        node = self._formula()
        token = self._peek()
        if token.kind != 'END':
            if token.kind == 'RPAREN':
                raise self._error(token, "unbalanced parentheses")
            raise self._error(token, "unexpected token")
        return node

    def _formula(self) -> Node:
        if self._accept_op('~'):
            return Tilde(None, self._bar())
        left = self._bar()
        if self._accept_op('~'):
            return Tilde(left, self._bar())
        return left

    def _bar(self) -> Node:
        node = self._sum()
        while self._accept_op('|'):
            node = BinaryOp('|', node, self._sum())
        return node

    def _sum(self) -> Node:
        node = self._product()
        while True:
            token = self._accept_op('+', '-')
            if token is None:
                return node
            node = BinaryOp(token.value, node, self._product())

    def _product(self) -> Node:
        node = self._interaction()
        while True:
            token = self._accept_op('*', '/')
            if token is None:
                return node
            node = BinaryOp(token.value, node, self._interaction())

    def _interaction(self) -> Node:
        node = self._unary()
        while self._accept_op(':'):
            node = BinaryOp(':', node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._accept_op('-'):
            return UnaryMinus(self._unary())
        if self._accept_op('+'):
            return self._unary()
        return self._power()

    def _power(self) -> Node:
        base = self._atom()
        if self._accept_op('^'):
            return BinaryOp('^', base, self._unary())
        return base

    def _atom(self) -> Node:
        token = self._peek()
        if token.kind == 'NAME':
            self._advance()
            if self._peek().kind == 'LPAREN':
                self._advance()
                return self._call(token.value)
            return Variable(token.value)
        if token.kind == 'NUMBER':
            self._advance()
            return Number(token.value)
        if token.kind == 'LPAREN':
            self._advance()
            body = self._formula()
            if self._peek().kind != 'RPAREN':
                raise self._error(self._peek(), "unbalanced parentheses, expected ')'")
            self._advance()
            return Paren(body)
        if token.kind == 'END':
            raise self._error(token, "incomplete expression")
        raise self._error(token, "expected a variable, number, call or '('")

    def _call(self, name: str) -> Call:
        args: List[Node] = []
        kwargs = []
        if self._peek().kind == 'RPAREN':
            self._advance()
            return Call(name)
        while True:
            token = self._peek()
            if token.kind == 'NAME' and self.tokens[self.index + 1].kind == 'EQUALS':
                self._advance()
                self._advance()
                kwargs.append((token.value, self._formula()))
            else:
                if kwargs:
                    raise self._error(token, "positional argument after keyword argument")
                args.append(self._formula())
            if self._peek().kind == 'COMMA':
                self._advance()
                continue
            if self._peek().kind != 'RPAREN':
                raise self._error(self._peek(), f"unbalanced parentheses in call to {name}()")
            self._advance()
            return Call(name, tuple(args), tuple(kwargs))


def parse_expression(text: str) -> Node:
    """Parse formula text into an expression tree."""
    node = FormulaParser(text).parse()
    logger.debug(f"Parsed formula '{text}'")
    return node
