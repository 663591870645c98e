"""
Column naming for standardized terms.

Every term's canonical text is turned into a valid Python identifier
(``log(x)`` -> ``log_x``, ``scale_by(x ~ g)`` -> ``scale_by_x_g``). Names are
handed out in term order; on collision the first term keeps the bare name and
later ones get ``_1``, ``_2``, ... appended.
"""
import keyword
import logging
import re
from typing import Dict, Iterable, List, Mapping, Set

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
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_INVALID_CHARS = re.compile(r'[^0-9A-Za-z_]+')


def make_identifier(text: str) -> str:
    """
    Turn arbitrary text into a valid identifier.

    Runs of operators, parentheses, tildes, spaces and other invalid
    characters collapse to a single underscore.

    Examples:
        >>> make_identifier('log(x)')
        'log_x'
        >>> make_identifier('scale_by(x ~ g)')
        'scale_by_x_g'
        >>> make_identifier('2nd level')
        'X2nd_level'
    """
    name = _INVALID_CHARS.sub('_', str(text)).strip('_')
    if not name:
        name = 'X'
    if name[0].isdigit():
        name = 'X' + name
    if keyword.iskeyword(name):
        name = name + '_'
    return name


def unique_identifiers(labels: Iterable[str]) -> List[str]:
    """Identifiers for a sequence of labels, de-duplicated in order."""
    sanitizer = NameSanitizer()
    return [sanitizer.assign(label) for label in labels]


class NameSanitizer:
    """
    Deterministic mapping from term text to unique column names.

    The same text always maps to the same name; different texts that
    sanitize to the same identifier are separated by a numeric suffix.
    """

    def __init__(self, reserved: Iterable[str] = ()):
        self._taken: Set[str] = set(reserved)
        self._assigned: Dict[str, str] = {}

    def assign(self, raw: str, width: int = 1) -> str:
        """
        Name for ``raw``.

        Args:
            raw: Canonical term text
            width: Number of columns the term expands to; for width > 1 the
                names ``<name>_1 .. <name>_<width>`` are reserved as well

        Returns:
            The assigned base name
        """
        if raw in self._assigned:
            return self._assigned[raw]

        base = make_identifier(raw)
        candidate = base
        suffix = 0
        while not self._is_free(candidate, width):
            suffix += 1
            candidate = f"{base}_{suffix}"

        if candidate != base:
            logger.debug(f"Name '{base}' already taken, using '{candidate}' for '{raw}'")

        self._taken.add(candidate)
        if width > 1:
            self._taken.update(expanded_names(candidate, width))
        self._assigned[raw] = candidate
        return candidate

    def _is_free(self, name: str, width: int) -> bool:
        if name in self._taken:
            return False
        if width > 1:
            return not any(n in self._taken for n in expanded_names(name, width))
        return True

    @property
    def mapping(self) -> Dict[str, str]:
        return dict(self._assigned)


def expanded_names(base: str, width: int) -> List[str]:
    """Column names of a term that expands to several columns."""
    return [f"{base}_{i}" for i in range(1, width + 1)]


def rewrite_formula(tree: Node, replacements: Mapping[str, str]) -> str:
    """
    Render a formula tree with terms replaced by their new names.

    Args:
        tree: Parsed formula tree
        replacements: Canonical term text -> replacement text

    Returns:
        Rewritten formula with the original term order and random-effect syntax
    """
    def render(node: Node) -> str:
        if isinstance(node, (Variable, Call)):
            key = deparse(node)
            if key in replacements:
                return replacements[key]
            return key
        if isinstance(node, Number):
            return node.text
        if isinstance(node, BinaryOp):
            if node.op == ':':
                return f"{render(node.left)}:{render(node.right)}"
            return f"{render(node.left)} {node.op} {render(node.right)}"
        if isinstance(node, UnaryMinus):
            return f"-{render(node.operand)}"
        if isinstance(node, Paren):
            return f"({render(node.body)})"
        if isinstance(node, Tilde):
            if node.left is None:
                return f"~ {render(node.right)}"
            return f"{render(node.left)} ~ {render(node.right)}"
        raise TypeError(f"Unknown node type: {type(node).__name__}")

    return render(tree)
