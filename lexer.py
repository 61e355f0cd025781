from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple


class MTError(Exception):
    """Base class for interpreter errors."""


class MTParseError(MTError):
    """Raised when one or more statements fail to tokenize."""

    def __init__(self, errors: List["LineParseError"]) -> None:
        summary = "; ".join(f"{err.kind} on token {err.index}" for err in errors)
        super().__init__(summary)
        self.errors = errors


class Case(Enum):
    UPPER = "upper"
    LOWER = "lower"


class Opcode(Enum):
    PRINT = "Print"
    INPUT = "Input"
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    VAR = "Var"
    BRANCH = "Branch"
    LABEL = "Label"
    EXIT = "Exit"
    INVALID = "Invalid"


OPCODE_TABLE: Mapping[Tuple[int, Case], Opcode] = MappingProxyType({
    (1, Case.UPPER): Opcode.PRINT,
    (1, Case.LOWER): Opcode.INPUT,
    (2, Case.UPPER): Opcode.ADD,
    (2, Case.LOWER): Opcode.SUB,
    (3, Case.UPPER): Opcode.MUL,
    (3, Case.LOWER): Opcode.DIV,
    (4, Case.UPPER): Opcode.VAR,
    (4, Case.LOWER): Opcode.VAR,
    (5, Case.UPPER): Opcode.BRANCH,
    (5, Case.LOWER): Opcode.BRANCH,
    (6, Case.UPPER): Opcode.LABEL,
    (6, Case.LOWER): Opcode.LABEL,
})

STATEMENT_SEP = "."

NO_OPCODE_PROVIDED = "NoOpcodeProvided"
COULDNT_PARSE_OPCODE = "CouldntParseOpcode"
UNKNOWN_OPERATION = "UnknownOperation"

_PARSE_MESSAGES = {
    NO_OPCODE_PROVIDED: "No OpCode provided.",
    COULDNT_PARSE_OPCODE: "OpCode couldn't be parsed (check spaces)",
    UNKNOWN_OPERATION: "Provided Operation is invalid.",
}


@dataclass(frozen=True)
class Token:
    opcode: Opcode
    name: str
    args: Tuple[str, ...] = ()
    index: int = 0
    line: int = 1

    @property
    def nargs(self) -> int:
        return len(self.args)

    @property
    def comparator(self) -> str:
        # Branch tokens pick their comparison from the first letter of the word.
        return self.name[:1].lower()


@dataclass(frozen=True)
class LineParseError:
    kind: str
    index: int
    statement: str
    line: int = 1

    @property
    def message(self) -> str:
        return _PARSE_MESSAGES[self.kind]


@dataclass(frozen=True)
class Diagnostic:
    message: str
    index: Optional[int] = None
    line: Optional[int] = None


class StatementError(MTError):
    def __init__(self, kind: str) -> None:
        super().__init__(_PARSE_MESSAGES[kind])
        self.kind = kind


def case_of(ch: str) -> Case:
    return Case.UPPER if ch.isupper() else Case.LOWER


def tokenize_statement(code: str, *, index: int = 0, line: int = 1) -> Token:
    """Turn one statement into a Token.

    The opcode comes from the length and case of the first word only.
    Raises StatementError when the statement has no usable opcode.
    """
    code = code.strip()
    if not code:
        raise StatementError(NO_OPCODE_PROVIDED)

    # Single spaces only: "a  b" keeps an empty word between a and b.
    words = code.split(" ")
    first = words[0]
    if not first:
        raise StatementError(COULDNT_PARSE_OPCODE)

    opcode = OPCODE_TABLE.get((len(first), case_of(first[0])))
    if opcode is None:
        raise StatementError(UNKNOWN_OPERATION)
    return Token(opcode=opcode, name=first, args=tuple(words[1:]), index=index, line=line)


@dataclass
class Lexer:
    """Splits source text into statements and tokenizes every one of them.

    Tokenizing never stops at the first bad statement; failures are kept in
    ``errors`` and replaced by INVALID tokens so indices stay aligned.
    """

    text: str
    filename: str
    errors: List[LineParseError] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)
    statements: List[str] = field(default_factory=list)

    def split_statements(self) -> List[Tuple[str, int]]:
        pieces: List[Tuple[str, int]] = []
        offset = 0
        parts = self.text.split(STATEMENT_SEP)
        for part in parts:
            pieces.append((part, self._line_of(part, offset)))
            offset += len(part) + len(STATEMENT_SEP)

        # Well-formed source ends with a separator, leaving an empty tail.
        tail, tail_line = pieces.pop()
        if tail.strip():
            pieces.append((tail, tail_line))
            self.warnings.append(
                Diagnostic("You forgot the dot in the last line of your code.", line=tail_line)
            )
        return pieces

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        for index, (statement, line) in enumerate(self.split_statements()):
            self.statements.append(statement.strip())
            try:
                tokens_append(tokenize_statement(statement, index=index, line=line))
            except StatementError as exc:
                self.errors.append(LineParseError(exc.kind, index, statement.strip(), line))
                tokens_append(Token(opcode=Opcode.INVALID, name="Invalid!", index=index, line=line))

        tokens_append(Token(opcode=Opcode.EXIT, name="", index=len(tokens), line=self._last_line()))
        return tokens

    def _line_of(self, part: str, offset: int) -> int:
        stripped = len(part) - len(part.lstrip())
        return self.text.count("\n", 0, offset + stripped) + 1

    def _last_line(self) -> int:
        return self.text.count("\n") + 1
