"""Spelled-out number literals.

A literal is an optional leading ``minus`` followed by digit words, with at
most one ``comma`` marking the start of the fractional part::

    nine seven three          -> 973.0
    minus six comma three nine -> -6.39

Matching is case-insensitive.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Mapping, Sequence

from lexer import MTError


NO_NUMBER_PROVIDED = "NoNumberProvided"
INVALID_NUMBER_LITERAL = "InvalidNumberLiteral"
DOUBLE_COMMA = "DoubleComma"

MINUS_WORD = "minus"
COMMA_WORD = "comma"

DIGIT_WORDS: Mapping[str, int] = MappingProxyType({
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
})


class NumberParseError(MTError):
    def __init__(self, kind: str, word: str = "") -> None:
        detail = f" ('{word}')" if word else ""
        super().__init__(f"{kind}{detail}")
        self.kind = kind
        self.word = word


def parse_number(words: Sequence[str]) -> float:
    if not words:
        raise NumberParseError(NO_NUMBER_PROVIDED)

    negative = words[0].lower() == MINUS_WORD
    in_fraction = False
    divisor = 10.0
    result = 0.0

    for position, word in enumerate(words):
        lowered = word.lower()
        if position == 0 and negative:
            continue
        if lowered == COMMA_WORD:
            if in_fraction:
                raise NumberParseError(DOUBLE_COMMA, word)
            in_fraction = True
            continue
        digit = DIGIT_WORDS.get(lowered)
        if digit is None:
            raise NumberParseError(INVALID_NUMBER_LITERAL, word)
        if in_fraction:
            result += digit / divisor
            divisor *= 10.0
        else:
            result = result * 10.0 + digit

    return -result if negative else result
