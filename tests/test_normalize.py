import pytest

from intcalc import UNARY_MARKER, Diagnostic, Expression, normalize


class TestNegation:
    @pytest.mark.parametrize(
        "src,expected",
        [
            ("-5 + 3", "~5 + 3"),
            ("2 - -3", "2 - ~3"),
            ("(-2)", "(~2)"),
            ("2 -3", "2 -3"),
            ("2 x -(3)", "2 x ~(3)"),
            ("--5", "~~5"),
            ("\t-1", "\t~1"),
            ("(1) - 2", "(1) - 2"),
        ],
    )
    def test_marker_replaces_leading_minus(self, src, expected):
        expression, error = normalize(src)
        assert error is None
        assert expression.normalized == expected
        assert expression.original == src

    def test_marker_is_tilde(self):
        assert UNARY_MARKER == "~"

    def test_explicit_marker_is_accepted(self):
        expression, error = normalize("~4 - ~2")
        assert error is None
        assert expression.normalized == "~4 - ~2"


class TestInvalidSymbols:
    def test_first_invalid_symbol_is_reported(self):
        expression, error = normalize("2 + a + b")
        assert error == Diagnostic("Unexpected symbol 'a' found at position 5.", 5)
        assert expression.normalized == "2 + a + b"

    def test_star_is_not_multiplication(self):
        _, error = normalize("2 * 3")
        assert error.message == "Unexpected symbol '*' found at position 3."
        assert error.column == 3

    def test_scan_continues_past_invalid_symbol(self):
        expression, _ = normalize("a - -1")
        assert expression.normalized == "a - ~1"

    def test_invalid_symbol_expects_operator_next(self):
        expression, _ = normalize("a - 1")
        assert expression.normalized == "a - 1"


class TestExpression:
    def test_lengths_must_match(self):
        with pytest.raises(ValueError):
            Expression("-1", "~")

    def test_is_immutable(self):
        expression, _ = normalize("1")
        with pytest.raises(AttributeError):
            expression.normalized = "2"

    def test_normalizing_twice_changes_nothing(self):
        first, error = normalize("-(-1) - -2 x (-3)")
        second, second_error = normalize(first.normalized)
        assert second.normalized == first.normalized
        assert error is None and second_error is None
