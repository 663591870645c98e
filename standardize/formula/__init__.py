"""
Formula handling: parsing into typed terms and rewriting with new names.
"""

from standardize.formula.names import (
    NameSanitizer,
    expanded_names,
    make_identifier,
    rewrite_formula,
    unique_identifiers,
)
from standardize.formula.nodes import deparse
from standardize.formula.parser import FormulaParser, parse_expression, tokenize
from standardize.formula.terms import (
    ParsedFormula,
    Role,
    Term,
    Wrapper,
    fixed_terms,
    has_random,
    parse_formula,
    random_terms,
)

__all__ = [
    # Parsing
    "FormulaParser",
    "tokenize",
    "parse_expression",
    "parse_formula",
    "deparse",
    # Terms
    "ParsedFormula",
    "Term",
    "Role",
    "Wrapper",
    "fixed_terms",
    "random_terms",
    "has_random",
    # Naming
    "NameSanitizer",
    "make_identifier",
    "unique_identifiers",
    "expanded_names",
    "rewrite_formula",
]
