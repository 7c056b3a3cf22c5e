"""
Per-run context.

Holds what must be remembered for the length of one execution and no
longer: the per-handler memo sets, registry answers and the messages to
report. A fresh RunContext means a fresh run.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from newsclipper.config import HandlerKind


@dataclass
class RunContext:
    """Memo sets, registry memo and collected messages for one run."""

    gate_checked: Set[str] = field(default_factory=set)
    gate_rejected: Dict[str, str] = field(default_factory=dict)
    compat_checked: Set[str] = field(default_factory=set)
    update_checked: Set[str] = field(default_factory=set)

    # Handlers found incompatible, so later resolutions fail the same way
    incompatible: Dict[str, str] = field(default_factory=dict)

    handler_types: Dict[str, HandlerKind] = field(default_factory=dict)
    downloaded_code: Dict[str, str] = field(default_factory=dict)
    registry_failed: bool = False

    # handler#<name> -> messages
    errors: Dict[str, List[str]] = field(default_factory=dict)

    # Raises ExecutionTimeoutError once the run deadline has passed
    deadline_check: Optional[Callable[[], None]] = None
    # Seconds left before the deadline, or None without one
    deadline_remaining: Optional[Callable[[], Optional[float]]] = None

    def report(self, handler_name: str, message: str) -> None:
        """Record a message to show with the output for a handler."""
        key = f"handler#{handler_name.lower()}"
        messages = self.errors.setdefault(key, [])
        if message not in messages:
            messages.append(message)

    def messages_for(self, handler_name: str) -> List[str]:
        return list(self.errors.get(f"handler#{handler_name.lower()}", []))

    def pop_messages(self, handler_names: List[str]) -> List[str]:
        """Remove and return the messages recorded for some handlers."""
        messages = []
        for name in handler_names:
            messages.extend(self.errors.pop(f"handler#{name.lower()}", []))
        return messages

    def check_deadline(self) -> None:
        if self.deadline_check is not None:
            self.deadline_check()

    def time_left(self) -> Optional[float]:
        if self.deadline_remaining is None:
            return None
        return self.deadline_remaining()
