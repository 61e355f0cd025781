"""
Pytest fixtures for running MT-Lang programs in-process.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

import pytest

from extensions import HookRegistry
from interpreter import Interpreter


@dataclass
class Harness:
    interpreter: Interpreter
    output: List[str] = field(default_factory=list)

    def run(self) -> int:
        return self.interpreter.run()


@pytest.fixture
def mt():
    """
    Build an interpreter over literal source.

    Lines in ``inputs`` are handed out one per INPUT; running out behaves
    like end of file. PRINT output is collected in ``harness.output``.
    """

    def build(source: str, inputs: Iterable[str] = (), *, verbose: bool = False,
              hooks: HookRegistry = None) -> Harness:
        feed = iter(inputs)
        output: List[str] = []

        def provider() -> str:
            try:
                return next(feed)
            except StopIteration:
                raise EOFError

        interpreter = Interpreter(
            source=source,
            filename="<string>",
            verbose=verbose,
            hooks=hooks,
            input_provider=provider,
            output_sink=output.append,
        )
        return Harness(interpreter=interpreter, output=output)

    return build
