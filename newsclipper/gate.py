"""
Gates decide whether a handler may be used at all.

A gate gets the handler name and a callable that reports the handler's
kind (looking on disk first, then asking the registry). It returns None
to allow the handler, or a message explaining the refusal.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from newsclipper.common import logger
from newsclipper.config import HandlerKind

KindLookup = Callable[[str], HandlerKind]


class Gate(ABC):
    """Base class for handler gates."""

    @abstractmethod
    def check(self, name: str, kind_of: KindLookup) -> Optional[str]:
        """Return None to allow the handler, or the reason it is refused."""


class AllowAllGate(Gate):
    """Allows every handler."""

    def check(self, name: str, kind_of: KindLookup) -> Optional[str]:
        return None


class AllowListGate(Gate):
    """
    Restricts acquisition handlers to a fixed set of names.

    Filter and output handlers are always allowed.
    """

    def __init__(self, allowed: Iterable[str]):
        self.allowed = {name.lower() for name in allowed}

    def check(self, name: str, kind_of: KindLookup) -> Optional[str]:
        if name.lower() in self.allowed:
            return None
        if kind_of(name) != HandlerKind.ACQUISITION:
            return None
        return (
            f"Acquisition handler \"{name}\" is not in the list of handlers "
            f"this installation may use."
        )


class SeatLimitGate(Gate):
    """
    Limits how many acquisition handlers may be installed.

    Once the limit is reached only the installed acquisition handlers
    may be used. Over the limit, no acquisition handler may be used.
    """

    def __init__(self, limit: int, installed: Callable[[], List[Path]]):
        self.limit = limit
        self.installed = installed

    def check(self, name: str, kind_of: KindLookup) -> Optional[str]:
        if kind_of(name) != HandlerKind.ACQUISITION:
            logger.debug(f"{name} isn't an acquisition handler -- okay to use.")
            return None

        installed = self.installed()
        logger.debug(f"{len(installed)} total acquisition handlers found.")
        file_names = "\n".join(f"  {path}" for path in installed)

        if len(installed) > self.limit:
            return (
                f"You currently have more than the allowed number of handlers on your "
                f"system. This installation is only registered to use {self.limit} "
                f"handlers. Please delete one or more of the following files:\n{file_names}"
            )

        if len(installed) == self.limit and name.lower() not in {p.stem.lower() for p in installed}:
            return (
                f"You currently have {self.limit} handlers on your system, and are trying "
                f"to use a handler that is not one of these ({name}). Please delete one "
                f"or more of the following files if you want to be able to use this "
                f"handler:\n{file_names}"
            )

        return None
