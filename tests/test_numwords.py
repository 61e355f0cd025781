import pytest

from numwords import (
    DIGIT_WORDS,
    DOUBLE_COMMA,
    INVALID_NUMBER_LITERAL,
    NO_NUMBER_PROVIDED,
    NumberParseError,
    parse_number,
)


class TestParseNumber:
    @pytest.mark.parametrize("words,expected", [
        (["nine", "seven", "three"], 973.0),
        (["minus", "seven", "three"], -73.0),
        (["seven", "comma", "three", "nine"], 7.39),
        (["comma", "three", "nine"], 0.39),
        (["minus", "six", "comma", "three", "nine"], -6.39),
        (["minus", "comma", "three", "zero"], -0.3),
        (["zero"], 0.0),
        (["one", "zero", "zero"], 100.0),
    ])
    def test_values(self, words, expected):
        assert parse_number(words) == expected

    def test_case_insensitive(self):
        assert parse_number(["Minus", "NINE", "Seven"]) == -97.0
        assert parse_number(["One", "COMMA", "five"]) == 1.5

    def test_lone_minus_is_zero(self):
        assert parse_number(["minus"]) == 0.0

    def test_every_digit_word(self):
        for word, digit in DIGIT_WORDS.items():
            assert parse_number([word]) == float(digit)


class TestParseNumberErrors:
    def test_no_number(self):
        with pytest.raises(NumberParseError) as excinfo:
            parse_number([])
        assert excinfo.value.kind == NO_NUMBER_PROVIDED

    def test_invalid_literal(self):
        with pytest.raises(NumberParseError) as excinfo:
            parse_number(["one", "two", "invalid", "zero"])
        assert excinfo.value.kind == INVALID_NUMBER_LITERAL
        assert excinfo.value.word == "invalid"

    def test_double_comma(self):
        with pytest.raises(NumberParseError) as excinfo:
            parse_number(["one", "comma", "two", "comma", "four"])
        assert excinfo.value.kind == DOUBLE_COMMA

    def test_minus_only_counts_first(self):
        with pytest.raises(NumberParseError) as excinfo:
            parse_number(["one", "minus"])
        assert excinfo.value.kind == INVALID_NUMBER_LITERAL
