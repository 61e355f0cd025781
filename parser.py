from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from lexer import Diagnostic, Opcode, Token


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int
    index: int
    statement: str


@dataclass(frozen=True)
class Program:
    tokens: Tuple[Token, ...]
    labels: Mapping[str, int]
    statements: Tuple[str, ...] = ()
    filename: str = "<string>"

    def location(self, index: int) -> Optional[SourceLocation]:
        if not 0 <= index < len(self.tokens):
            return None
        token = self.tokens[index]
        statement = self.statements[index] if index < len(self.statements) else ""
        return SourceLocation(file=self.filename, line=token.line, index=index, statement=statement)


@dataclass
class Parser:
    """Resolves labels over a finished token list and freezes it into a Program."""

    tokens: Sequence[Token]
    filename: str
    statements: Sequence[str] = ()
    warnings: List[Diagnostic] = field(default_factory=list)

    def parse(self) -> Program:
        labels = self.resolve_labels()
        return Program(
            tokens=tuple(self.tokens),
            labels=MappingProxyType(labels),
            statements=tuple(self.statements),
            filename=self.filename,
        )

    def resolve_labels(self) -> Dict[str, int]:
        labels: Dict[str, int] = {}
        for index, token in enumerate(self.tokens):
            if token.opcode is not Opcode.LABEL:
                continue
            if token.nargs > 0:
                self._warn(index, token, "You have a label with more than zero arguments.")
            if token.name in labels:
                # First definition wins.
                self._warn(index, token, f"You are defining the label `{token.name}` more than once!")
                continue
            labels[token.name] = index
        return labels

    def _warn(self, index: int, token: Token, message: str) -> None:
        self.warnings.append(Diagnostic(message, index=index, line=token.line))
