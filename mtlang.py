"""MT-Lang entry point."""

from __future__ import annotations
import argparse
import os
import sys
from typing import List, Optional, Tuple

from extensions import HookRegistry, TokenTracer
from interpreter import Interpreter, MTRuntimeError, TracebackFormatter
from lexer import Diagnostic, LineParseError, MTParseError

EXIT_OK = 0
EXIT_USAGE = 1
# Every tokenize-phase and runtime-phase abort.
EXIT_ABORT = 3

RED = (255, 85, 85)
YELLOW = (255, 215, 0)
GREEN = (80, 250, 123)


def paint(text: str, rgb: Tuple[int, int, int], enabled: bool) -> str:
    if not enabled:
        return text
    r, g, b = rgb
    return f"\x1b[38;2;{r};{g};{b}m{text}\033[0m"


def format_warning(warning: Diagnostic, color: bool) -> str:
    label = paint("Warning", YELLOW, color)
    if warning.index is None:
        return f"{label}: {warning.message}"
    return f"{label} on token {warning.index}: {warning.message}"


def format_parse_error(error: LineParseError, color: bool) -> str:
    return f"{paint('Error:', RED, color)} `{error.message}` on token {error.index}: \"{error.statement}\" \n"


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="MT-Lang reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit variable snapshots in diagnostics")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON diagnostic")
    parser.add_argument("--trace", action="store_true", help="Print every executed token to stderr")
    parser.add_argument("--no-color", dest="no_color", action="store_true", help="Disable colored status text")
    args = parser.parse_args(argv)
    color = not args.no_color and "NO_COLOR" not in os.environ

    if args.program is None:
        print(paint("Didn't provide the source file to run.", RED, color))
        return EXIT_USAGE

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(paint(f"Failed to read {filename}: {exc}", RED, color))
            return EXIT_USAGE

    hooks = HookRegistry()
    if args.trace:
        TokenTracer().attach(hooks)

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, hooks=hooks)
    try:
        interpreter.parse()
    except MTParseError as error:
        for warning in interpreter.warnings:
            print(format_warning(warning, color))
        for parse_error in error.errors:
            print(format_parse_error(parse_error, color))
        print(paint("Code can't run as a result of the above errors.", RED, color))
        return EXIT_ABORT
    for warning in interpreter.warnings:
        print(format_warning(warning, color))

    try:
        code = interpreter.run()
    except MTRuntimeError as error:
        formatter = TracebackFormatter(interpreter, highlight=lambda text: paint(text, RED, color))
        print(formatter.format_text(error, verbose=args.verbose))
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        print(paint("The program terminated because of the above error.", RED, color))
        return EXIT_ABORT

    print(paint("Program is done.", GREEN, color))
    return code


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
