from __future__ import annotations
import json
import math
import operator
import os
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Union

import numpy as np

from extensions import HookRegistry
from lexer import Case, Diagnostic, Lexer, MTError, MTParseError, Opcode, Token, case_of
from numwords import NumberParseError, parse_number
from parser import Parser, Program, SourceLocation


TYPE_NUM = "NUM"
TYPE_STR = "STR"

BUILTIN_CONSTANTS: Mapping[str, str] = MappingProxyType({
    "newl": "\n",
    "spce": " ",
    "dott": ".",
})

VARIABLE_NOT_FOUND = "VariableNotFound"
VARIABLE_DOES_NOT_EXIST = "VariableDoesNotExist"
INVALID_AMOUNT_ARGUMENTS = "InvalidAmountArguments"
ARITHMETIC_ON_STRING = "ArithmeticOnString"
STORING_TO_STRING = "StoringToString"
ZERO_DIVISION_ERROR = "ZeroDivisionError"
TYPE_CHANGE_NOT_ALLOWED = "TypeChangeNotAllowed"
MISSING_CASE = "MissingCase"
LABEL_NOT_FOUND = "LabelNotFound"
INVALID_BRANCH_CONDITION = "InvalidBranchCondition"
VARS_NOT_OF_SAME_TYPE = "VarsNotOfSameType"
INVALID_COMPARISON_FOR_TYPES = "InvalidComparisonForTypes"
INTERNAL = "internal"
EXT = "EXT"

INPUT_MISMATCH_NOTICE = "The program expected a Number, which your input is *not*!"

# Retained history for diagnostics. Step numbering keeps counting past it.
LOG_CAPACITY = 1000
IO_LOG_CAPACITY = 1000

# Plain ASCII decimal or scientific literals plus inf/infinity/nan. No whitespace,
# no digit separators, no non-ASCII digits.
_FLOAT_LITERAL = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf|infinity|nan)",
    re.IGNORECASE | re.ASCII,
)


def format_number(value: float) -> str:
    """Shortest round-tripping positional rendering: 973.0 -> '973', 1e21 -> '1000000000000000000000'."""
    if math.isnan(value):
        return "NaN"
    return np.format_float_positional(value, trim="-")


@dataclass(frozen=True)
class Value:
    type: str
    value: Union[str, float]

    def render(self) -> str:
        if self.type == TYPE_NUM:
            return format_number(float(self.value))
        return str(self.value)


class MTRuntimeError(MTError):
    """Raised for runtime faults. Every one of them ends the run."""

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        index: Optional[int] = None,
        location: Optional[SourceLocation] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.index = index
        self.location = location
        self.step_index: Optional[int] = None


class ExitSignal(Exception):
    def __init__(self, code: int = 0, reason: str = "exit") -> None:
        super().__init__(code)
        self.code = code
        self.reason = reason


class State(Enum):
    RUNNING = "running"
    HALTED = "halted"
    FATAL_ABORT = "fatal_abort"


@dataclass
class Environment:
    values: Dict[str, Value] = field(default_factory=dict)

    @classmethod
    def seeded(cls) -> "Environment":
        return cls({name: Value(TYPE_STR, text) for name, text in BUILTIN_CONSTANTS.items()})

    def get(self, name: str) -> Value:
        value = self.values.get(name)
        if value is None:
            raise MTRuntimeError(f"Variable '{name}' does not exist", kind=VARIABLE_DOES_NOT_EXIST)
        return value

    def get_optional(self, name: str) -> Optional[Value]:
        return self.values.get(name)

    def has(self, name: str) -> bool:
        return name in self.values

    def set(self, name: str, value: Value, *, kind: str = TYPE_CHANGE_NOT_ALLOWED) -> None:
        existing = self.values.get(name)
        if existing is not None and existing.type != value.type:
            raise MTRuntimeError(
                f"Changing type of variable '{name}' from {existing.type} to {value.type}",
                kind=kind,
            )
        self.values[name] = value

    def bind(self, name: str, value: Value) -> None:
        # Unchecked overwrite; only INPUT uses it.
        self.values[name] = value

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            rendered = val.render()
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered!r}"

        return {k: _render(v) for k, v in self.values.items()}


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    ip: Optional[int]
    opcode: str
    source_location: Optional[SourceLocation]
    env_snapshot: Optional[Dict[str, str]]


class StateLogger:
    def __init__(self, verbose: bool, capacity: int = LOG_CAPACITY) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=capacity)
        self.next_state_index = 0

    def record(
        self,
        *,
        ip: Optional[int],
        opcode: str,
        location: Optional[SourceLocation],
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            ip=ip,
            opcode=opcode,
            source_location=location,
            env_snapshot=env_snapshot,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    @property
    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


def _is_equal(left: Value, right: Value) -> bool:
    return left.value == right.value


def _is_less(left: Value, right: Value) -> bool:
    if left.type != TYPE_NUM:
        raise MTRuntimeError("Less-than is only defined for numbers", kind=INVALID_COMPARISON_FOR_TYPES)
    return left.value < right.value


def _is_greater(left: Value, right: Value) -> bool:
    if left.type != TYPE_NUM:
        raise MTRuntimeError("Greater-than is only defined for numbers", kind=INVALID_COMPARISON_FOR_TYPES)
    return left.value > right.value


COMPARATORS: Mapping[str, Callable[[Value, Value], bool]] = MappingProxyType({
    "e": _is_equal,
    "l": _is_less,
    "g": _is_greater,
})


Handler = Callable[[Token], Optional[int]]


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        hooks: Optional[HookRegistry] = None,
        input_provider: Optional[Callable[[], str]] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.source = source
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.input_provider = input_provider or (lambda: input())
        self.output_sink = output_sink or (lambda text: print(text))

        self.program: Optional[Program] = None
        self.labels: Mapping[str, int] = MappingProxyType({})
        self.warnings: List[Diagnostic] = []
        self.env = Environment.seeded()
        self.ip = 0
        self.state = State.RUNNING
        self.logger = StateLogger(verbose=verbose)
        self.logger.record(ip=None, opcode="<seed>", location=None)
        self.io_log: Deque[Dict[str, Any]] = deque(maxlen=IO_LOG_CAPACITY)

        self._handlers: Dict[Opcode, Handler] = {
            Opcode.PRINT: self._print,
            Opcode.INPUT: self._input,
            Opcode.ADD: lambda t: self._arithmetic(t, operator.add),
            Opcode.SUB: lambda t: self._arithmetic(t, operator.sub),
            Opcode.MUL: lambda t: self._arithmetic(t, operator.mul),
            Opcode.DIV: lambda t: self._arithmetic(t, operator.truediv, divide=True),
            Opcode.VAR: self._var,
            Opcode.BRANCH: self._branch,
            Opcode.LABEL: self._label,
            Opcode.EXIT: self._exit,
            Opcode.INVALID: self._invalid,
        }

    def parse(self) -> Program:
        lexer = Lexer(self.source, self.filename)
        tokens = lexer.tokenize()
        parser = Parser(tokens, self.filename, lexer.statements)
        program = parser.parse()
        self.warnings = lexer.warnings + parser.warnings
        if lexer.errors:
            raise MTParseError(lexer.errors)
        self.program = program
        return program

    def run(self) -> int:
        """Execute the program and return its exit code.

        Fatal conditions propagate as MTRuntimeError with the failing
        instruction index attached.
        """
        program = self.program or self.parse()
        self.labels = program.labels
        try:
            self._emit_event("program_start", self, program)
            self._execute(program)
        except ExitSignal as sig:
            self.state = State.HALTED
            self._emit_event("program_end", self, sig.code)
            return sig.code
        except MTRuntimeError as error:
            self.state = State.FATAL_ABORT
            self._attach_context(error, program)
            self._emit_event("on_error", self, error)
            raise
        except Exception as exc:
            self.state = State.FATAL_ABORT
            # Surface interpreter defects through the same diagnostic path.
            wrapped = MTRuntimeError(f"Internal interpreter error: {exc}", kind=INTERNAL)
            self._attach_context(wrapped, program)
            self._emit_event("on_error", self, wrapped)
            raise wrapped from exc
        raise AssertionError("execution loop ended without a signal")

    def _execute(self, program: Program) -> None:
        tokens = program.tokens
        handlers = self._handlers
        emit_event = self._emit_event
        log_step = self._log_step
        while True:
            if not 0 <= self.ip < len(tokens):
                raise RuntimeError(f"instruction pointer {self.ip} is outside the program")
            token = tokens[self.ip]
            log_step(token, program)
            emit_event("before_token", self, token)
            next_ip = handlers[token.opcode](token)
            emit_event("after_token", self, token)
            self.ip = self.ip + 1 if next_ip is None else next_ip

    def _attach_context(self, error: MTRuntimeError, program: Program) -> None:
        if error.index is None:
            error.index = self.ip
        if error.location is None:
            error.location = program.location(error.index)
        if self.logger.last_entry is not None:
            error.step_index = self.logger.last_entry.step_index

    # Opcodes

    def _print(self, token: Token) -> None:
        rendered: List[str] = []
        for name in token.args:
            value = self.env.get_optional(name)
            if value is None:
                raise MTRuntimeError(f"Couldn't find var '{name}', you are trying to use.", kind=VARIABLE_NOT_FOUND)
            rendered.append(value.render())
        text = "".join(rendered)
        self.output_sink(text)
        self.io_log.append({"event": "PRINT", "text": text})

    def _input(self, token: Token) -> None:
        self._expect_args(token, 2, "Input needs exactly two args.")
        numeric = self._wants_number(token.args[0])
        target = token.args[1]
        text = self._read_line()
        self.io_log.append({"event": "INPUT", "text": text})

        if not numeric:
            self.env.bind(target, Value(TYPE_STR, text))
            return
        if _FLOAT_LITERAL.fullmatch(text) is None:
            self.output_sink(INPUT_MISMATCH_NOTICE)
            self.io_log.append({"event": "EXIT", "code": 0})
            raise ExitSignal(0, reason="input type mismatch")
        self.env.bind(target, Value(TYPE_NUM, float(text)))

    def _arithmetic(self, token: Token, func: Callable[[float, float], float], *, divide: bool = False) -> None:
        self._expect_args(token, 3, f"{token.opcode.value} needs exactly three args.")
        left = self._expect_number(token.args[0])
        right = self._expect_number(token.args[1])
        if divide and right == 0.0:
            raise MTRuntimeError(f"Division by zero ('{token.args[1]}' is 0)", kind=ZERO_DIVISION_ERROR)
        self.env.set(token.args[2], Value(TYPE_NUM, func(left, right)), kind=STORING_TO_STRING)

    def _var(self, token: Token) -> None:
        if not token.args:
            raise MTRuntimeError("Var token is missing argument(s).", kind=INVALID_AMOUNT_ARGUMENTS)

        if self._case_of_arg(token.args[0]) is Case.UPPER:
            try:
                value = Value(TYPE_NUM, parse_number(token.args))
            except NumberParseError as exc:
                raise MTRuntimeError(f"Couldn't parse number: {exc}", kind=exc.kind) from exc
        else:
            value = Value(TYPE_STR, " ".join(token.args))
        self.env.set(token.name, value, kind=TYPE_CHANGE_NOT_ALLOWED)

    def _branch(self, token: Token) -> Optional[int]:
        self._expect_args(token, 3, "Branch Opcode does not have exactly *3* arguments.")
        compare = COMPARATORS.get(token.comparator)
        if compare is None:
            raise MTRuntimeError(
                "Branch command doesn't start with <e/l/g> (or uppercase version) and is invalid.",
                kind=INVALID_BRANCH_CONDITION,
            )
        target = self.labels.get(token.args[2])
        if target is None:
            raise MTRuntimeError(
                f"Couldn't find label '{token.args[2]}' you are trying to jump to.", kind=LABEL_NOT_FOUND
            )

        left = self.env.get(token.args[0])
        right = self.env.get(token.args[1])
        if left.type != right.type:
            raise MTRuntimeError(
                f"Cannot compare {left.type} with {right.type}", kind=VARS_NOT_OF_SAME_TYPE
            )
        return target if compare(left, right) else None

    def _label(self, token: Token) -> None:
        # Resolved before execution started.
        return None

    def _exit(self, token: Token) -> None:
        self.io_log.append({"event": "EXIT", "code": 0})
        raise ExitSignal(0)

    def _invalid(self, token: Token) -> None:
        raise RuntimeError("trying to execute an invalid token; tokenize errors must stop the run first")

    # Helpers

    def _expect_args(self, token: Token, count: int, message: str) -> None:
        if token.nargs != count:
            raise MTRuntimeError(f"{message} (got {token.nargs})", kind=INVALID_AMOUNT_ARGUMENTS)

    def _expect_number(self, name: str) -> float:
        value = self.env.get(name)
        if value.type != TYPE_NUM:
            raise MTRuntimeError(f"Arithmetic on string variable '{name}'", kind=ARITHMETIC_ON_STRING)
        return float(value.value)

    def _case_of_arg(self, word: str) -> Case:
        if not word:
            raise MTRuntimeError("Argument has no characters to take the case from (check spaces)", kind=MISSING_CASE)
        return case_of(word[0])

    def _wants_number(self, word: str) -> bool:
        # Only an ASCII capital selects numeric input; a non-ASCII capital reads text.
        self._case_of_arg(word)
        return word[0].isascii() and word[0].isupper()

    def _read_line(self) -> str:
        try:
            line = self.input_provider()
        except EOFError:
            line = ""
        if line.endswith("\n"):
            line = line[:-1]
        return line

    def _emit_event(self, event: str, *args: Any, **kwargs: Any) -> None:
        try:
            self.hooks.emit(event, *args, **kwargs)
        except (MTRuntimeError, ExitSignal):
            raise
        except Exception as exc:
            raise MTRuntimeError(f"Hook '{event}' failed: {exc}", kind=EXT) from exc

    def _log_step(self, token: Token, program: Program) -> None:
        location = program.location(self.ip)
        env_snapshot = self.env.snapshot() if self.verbose else None
        self.logger.record(
            ip=self.ip,
            opcode=token.opcode.value,
            location=location,
            env_snapshot=env_snapshot,
        )


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter, *, highlight: Callable[[str], str] = lambda text: text) -> None:
        self.interpreter = interpreter
        self.highlight = highlight

    def format_text(self, error: MTRuntimeError, verbose: bool) -> str:
        lines = [f"{self.highlight('Error:')} `{error.kind}` on token {error.index}: {error.message}"]
        location = error.location
        if location is not None:
            lines.append(f"  File \"{location.file}\", line {location.line}, token {location.index}")
            if location.statement:
                lines.append(f"    {location.statement}")
        entry = self.interpreter.logger.last_entry
        if entry is not None:
            lines.append(f"  State log index: {entry.step_index}  State id: {entry.state_id}")
            if verbose and entry.env_snapshot is not None:
                snapshot = ", ".join(f"{k}={v}" for k, v in entry.env_snapshot.items())
                lines.append(f"  Env snapshot: {snapshot}")
        return "\n".join(lines)

    def to_json(self, error: MTRuntimeError) -> str:
        data: Dict[str, Any] = {
            "error": {
                "kind": error.kind,
                "message": error.message,
                "index": error.index,
                "failing_step_index": error.step_index,
            },
        }
        if error.location is not None:
            data["source_location"] = {
                "file": error.location.file,
                "line": error.location.line,
                "statement": error.location.statement,
            }
        steps: List[Dict[str, Any]] = []
        for entry in list(self.interpreter.logger.entries)[-10:]:
            step: Dict[str, Any] = {
                "step_index": entry.step_index,
                "state_id": entry.state_id,
                "ip": entry.ip,
                "opcode": entry.opcode,
            }
            if entry.env_snapshot is not None:
                step["env_snapshot"] = entry.env_snapshot
            steps.append(step)
        data["recent_steps"] = steps
        return json.dumps(data, indent=2)
