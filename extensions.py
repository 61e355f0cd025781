"""Execution observers.

The interpreter announces each phase of a run on a HookRegistry. Observers
subscribe to the events they need; they see the interpreter and the token
being executed but never change control flow.
"""

from __future__ import annotations
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple


EVENTS = ("program_start", "before_token", "after_token", "on_error", "program_end")

Observer = Callable[..., None]


class HookError(Exception):
    pass


@dataclass
class HookRegistry:
    # event -> [(priority, observer)], highest priority first
    _observers: Dict[str, List[Tuple[int, Observer]]] = field(default_factory=dict)

    def subscribe(self, event: str, observer: Observer, *, priority: int = 0) -> None:
        if event not in EVENTS:
            raise HookError(f"Unknown event '{event}' (expected one of {', '.join(EVENTS)})")
        queue = self._observers.setdefault(event, [])
        queue.append((priority, observer))
        queue.sort(key=lambda pair: pair[0], reverse=True)

    def observers(self, event: str) -> List[Observer]:
        return [observer for _, observer in self._observers.get(event, [])]

    def emit(self, event: str, *args: Any) -> None:
        for observer in self.observers(event):
            observer(*args)


@dataclass
class TokenTracer:
    """Writes one line per executed token: ip, opcode, then the statement words."""

    stream: Optional[TextIO] = None

    def attach(self, hooks: HookRegistry) -> "TokenTracer":
        # Lowest priority so the line shows up after any other observer output.
        hooks.subscribe("before_token", self, priority=-100)
        return self

    def __call__(self, interpreter: Any, token: Any) -> None:
        words = " ".join((token.name,) + tuple(token.args))
        line = f"[trace] {interpreter.ip:>5} {token.opcode.value:<6} {words}".rstrip()
        print(line, file=self.stream or sys.stderr)
