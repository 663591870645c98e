"""
Tests for column naming and formula rewriting.
"""
import pytest

from standardize.formula import (
    NameSanitizer,
    expanded_names,
    make_identifier,
    parse_formula,
    rewrite_formula,
    unique_identifiers,
)


class TestMakeIdentifier:
    """Tests for make_identifier."""

    @pytest.mark.parametrize("text,expected", [
        ("x", "x"),
        ("log(x)", "log_x"),
        ("scale_by(x ~ g)", "scale_by_x_g"),
        ("I(x^2)", "I_x_2"),
        ("offset(log(e))", "offset_log_e"),
        ("2nd level", "X2nd_level"),
        ("class", "class_"),
        ("()", "X"),
        ("a.b", "a_b"),
    ])
    def test_identifiers(self, text, expected):
        assert make_identifier(text) == expected

    def test_result_is_identifier(self):
        for text in ["log(x + 1)", "`odd name`", "-1", "a:b"]:
            assert make_identifier(text).isidentifier()


class TestNameSanitizer:
    """Tests for deterministic, collision-free naming."""

    def test_same_text_same_name(self):
        sanitizer = NameSanitizer()
        assert sanitizer.assign("log(x)") == "log_x"
        assert sanitizer.assign("log(x)") == "log_x"

    def test_collision_gets_suffix(self):
        sanitizer = NameSanitizer()
        assert sanitizer.assign("log_x") == "log_x"
        assert sanitizer.assign("log(x)") == "log_x_1"
        assert sanitizer.assign("log x") == "log_x_2"
        assert sanitizer.mapping == {
            "log_x": "log_x", "log(x)": "log_x_1", "log x": "log_x_2"
        }

    def test_reserved_names(self):
        sanitizer = NameSanitizer(reserved=["x"])
        assert sanitizer.assign("x") == "x_1"

    def test_width_reserves_expanded_names(self):
        sanitizer = NameSanitizer(reserved=["a_1"])
        assert sanitizer.assign("a", width=2) == "a_2"
        # a_2_1 / a_2_2 are now taken
        assert sanitizer.assign("a_2_1") == "a_2_1_1"

    def test_unique_identifiers(self):
        assert unique_identifiers(["a b", "a_b", "c"]) == ["a_b", "a_b_1", "c"]

    def test_expanded_names(self):
        assert expanded_names("poly_x_3", 3) == ["poly_x_3_1", "poly_x_3_2", "poly_x_3_3"]


class TestRewriteFormula:
    """Tests for formula rewriting."""

    def test_rewrite_keeps_structure(self):
        tree = parse_formula("y ~ log(x) + f:x + (1 + x | g)").tree
        rewritten = rewrite_formula(tree, {"log(x)": "log_x", "y": "y_std"})
        assert rewritten == "y_std ~ log_x + f:x + (1 + x | g)"

    def test_intercept_markers_preserved(self):
        tree = parse_formula("y ~ 0 + x").tree
        assert rewrite_formula(tree, {}) == "y ~ 0 + x"
