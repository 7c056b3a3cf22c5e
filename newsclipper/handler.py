"""
Base class for handlers and helpers for reading handler source code.

A handler is a Python module stored as <root>/<Kind>/<name>.py. It
declares its identity with module constants and defines one Handler
subclass::

    from newsclipper.handler import Handler

    HANDLER_KIND = "Acquisition"
    VERSION = "1.02"
    PROTOCOL_VERSION = "1.18"

    class Slashdot(Handler):
        def get(self, attributes):
            return self.get_url("https://slashdot.org/")

The constants are read from the source text so that incompatible code
is never executed.
"""

import logging
import re
import sys
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from newsclipper.config import DEFAULT_UPDATE_TIMES, HandlerKind
from newsclipper.datakinds import DataKind

KIND_PATTERN = re.compile(r"""^HANDLER_KIND\s*=\s*["'](\w+)["']""", re.MULTILINE)
VERSION_PATTERN = re.compile(r"""^VERSION\s*=\s*["']?(\d+(?:\.\d+)?)["']?""", re.MULTILINE)
PROTOCOL_PATTERN = re.compile(
    r"""^PROTOCOL_VERSION\s*=\s*["']?(\d+(?:\.\d+)?)["']?""", re.MULTILINE
)
CLASS_PATTERN = re.compile(r"^class\s+\w+\s*\(", re.MULTILINE)
IMPORT_PATTERN = re.compile(r"^(?:from\s+([\w.]+)\s+import|import\s+([\w.]+))", re.MULTILINE)


class Handler:
    """Base class all handlers derive from.

    Acquisition handlers override get(), filter handlers override
    filter() and output handlers override output().
    """

    # Kinds accepted by filter() and output()
    filter_types: Tuple[DataKind, ...] = (DataKind.STRING, DataKind.ARRAY, DataKind.HASH)
    output_types: Tuple[DataKind, ...] = (DataKind.STRING, DataKind.ARRAY, DataKind.HASH)

    # Set by the factory when the handler is created
    handler_name: str = ""
    kind: Optional[HandlerKind] = None

    def __init__(self, fetcher: Optional[Any] = None):
        self.fetcher = fetcher
        self.logger = logging.getLogger(f"newsclipper.handler.{type(self).__name__.lower()}")

    def get(self, attributes: Dict[str, str]) -> Any:
        raise NotImplementedError(
            f"{type(self).__name__} does not have the ability to do data acquisition."
        )

    def filter(self, attributes: Dict[str, str], data: Any) -> Any:
        return data

    def output(self, attributes: Dict[str, str], data: Any) -> Any:
        return data

    def update_times(self) -> List[str]:
        """When the data this handler fetches changes. Override as needed."""
        return list(DEFAULT_UPDATE_TIMES)

    def default_handlers(self, attributes: Dict[str, str]) -> List[Dict[str, str]]:
        """
        Filter and output commands to use when a tag only names an input.

        The last description is the output handler, the others are filters.
        Each is a dict with at least a 'name' key.
        """
        return []

    @property
    def capabilities(self) -> FrozenSet[str]:
        """Which of get/filter/output this handler implements itself."""
        caps = set()
        for method in ("get", "filter", "output"):
            if getattr(type(self), method) is not getattr(Handler, method):
                caps.add(method)
        return frozenset(caps)

    def get_url(self, url: str, reload: bool = False) -> Optional[bytes]:
        """Fetch a URL through the content cache using this handler's update times."""
        if self.fetcher is None:
            raise RuntimeError(f"Handler {self.handler_name or type(self).__name__} has no fetcher")
        return self.fetcher.fetch(
            url, self.update_times(), reload=reload, handler_name=self.handler_name or None
        )


def read_declared_kind(code: str) -> Optional[HandlerKind]:
    """Get the kind a handler's source declares."""
    match = KIND_PATTERN.search(code)
    if not match:
        return None
    try:
        return HandlerKind.parse(match.group(1))
    except ValueError:
        return None


def read_declared_version(code: str) -> Optional[str]:
    """Get the handler version from its source."""
    match = VERSION_PATTERN.search(code)
    return match.group(1) if match else None


def read_protocol_version(code: str) -> Optional[str]:
    """Get the protocol version a handler was written for, if it says."""
    match = PROTOCOL_PATTERN.search(code)
    return match.group(1) if match else None


def looks_like_handler(code: str) -> bool:
    """Cheap structural check that downloaded text is a handler module."""
    return read_declared_kind(code) is not None and CLASS_PATTERN.search(code) is not None


def third_party_imports(code: str) -> List[str]:
    """List top-level modules a handler imports outside the standard library."""
    stdlib = getattr(sys, "stdlib_module_names", frozenset())
    modules = []
    for match in IMPORT_PATTERN.finditer(code):
        top = (match.group(1) or match.group(2)).split(".")[0]
        if top in stdlib or top in ("newsclipper", "__future__") or top in modules:
            continue
        modules.append(top)
    return modules
