"""
Discovery and loading of handler modules.

Handler files live in <root>/<Kind>/<name>.py for each configured root.
Loaded handlers are kept in an in-process registry keyed by name;
unloading drops the registry entry and the module, so the next load
executes whatever code is on disk at that point.
"""

import sys
import traceback
import types
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Type

from newsclipper.common import logger
from newsclipper.config import HANDLER_KIND_ORDER, HandlerKind, get_kind_dir
from newsclipper.errors import HandlerLoadError
from newsclipper.handler import (
    Handler,
    read_declared_version,
    read_protocol_version,
)
from newsclipper.models import HandlerDescriptor

MODULE_PREFIX = "newsclipper_handlers"


@dataclass
class LoadedHandler:
    """A handler class loaded from disk."""
    name: str
    kind: HandlerKind
    path: Path
    handler_class: Type[Handler]
    module_name: str
    warnings: List[str] = field(default_factory=list)


def handler_filename(name: str) -> str:
    return f"{name.lower()}.py"


class HandlerLoader:
    """In-process registry of handler classes backed by handler directories."""

    def __init__(self, roots: Sequence[Path]):
        self.roots = [Path(r) for r in roots]
        self._loaded: Dict[str, LoadedHandler] = {}

    def locate(self, name: str) -> Optional[Tuple[HandlerKind, Path]]:
        """
        Find a handler file without loading it.

        Kinds are searched in Acquisition, Filter, Output order; within a
        kind, roots are searched in configured order.
        """
        name = name.lower()
        for kind in HANDLER_KIND_ORDER:
            for root in self.roots:
                path = get_kind_dir(root, kind) / handler_filename(name)
                if path.is_file():
                    return kind, path
        return None

    def describe(self, name: str) -> Optional[HandlerDescriptor]:
        """Build a descriptor for an installed handler from its source."""
        found = self.locate(name)
        if found is None:
            return None
        kind, path = found
        code = path.read_text(encoding="utf-8", errors="replace")
        return HandlerDescriptor(
            name=name,
            kind=kind,
            install_path=path,
            local_code_version=read_declared_version(code),
            protocol_version=read_protocol_version(code),
        )

    def is_loaded(self, name: str) -> bool:
        return name.lower() in self._loaded

    def get_loaded(self, name: str) -> Optional[LoadedHandler]:
        return self._loaded.get(name.lower())

    def load(self, name: str) -> Optional[LoadedHandler]:
        """
        Load a handler by name.

        Returns:
            The loaded handler, or None if no handler file exists

        Raises:
            HandlerLoadError: If a handler file exists but fails to load
        """
        name = name.lower()

        if name in self._loaded:
            logger.debug(f"Handler \"{name}\" already loaded")
            return self._loaded[name]

        logger.debug(f"Trying to load handler \"{name}\"")
        found = self.locate(name)
        if found is None:
            logger.debug("Couldn't find handler")
            return None

        kind, path = found
        loaded = self._exec_handler(name, kind, path)
        self._loaded[name] = loaded
        logger.debug(f"Found handler as: {path}")
        return loaded

    def _exec_handler(self, name: str, kind: HandlerKind, path: Path) -> LoadedHandler:
        module_name = f"{MODULE_PREFIX}.{kind.value.lower()}.{name}"

        # Compiled from the source text each time so a freshly replaced
        # file is never shadowed by cached bytecode
        module = types.ModuleType(module_name)
        module.__file__ = str(path)
        sys.modules[module_name] = module

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                source = path.read_text(encoding="utf-8")
                code = compile(source, str(path), "exec")
                exec(code, module.__dict__)
            except Exception as e:
                sys.modules.pop(module_name, None)
                diagnostic = "".join(traceback.format_exception_only(type(e), e)).strip()
                raise HandlerLoadError(name, str(path), diagnostic) from e

        handler_class = None
        for value in vars(module).values():
            if (
                isinstance(value, type)
                and issubclass(value, Handler)
                and value is not Handler
                and value.__module__ == module_name
            ):
                handler_class = value
                break

        if handler_class is None:
            sys.modules.pop(module_name, None)
            raise HandlerLoadError(name, str(path), "No Handler subclass is defined in the file")

        return LoadedHandler(
            name=name,
            kind=kind,
            path=path,
            handler_class=handler_class,
            module_name=module_name,
            warnings=[str(w.message) for w in caught],
        )

    def unload(self, name: str) -> bool:
        """Forget a loaded handler so the next load reads it from disk again."""
        name = name.lower()
        loaded = self._loaded.pop(name, None)
        if loaded is None:
            return False
        logger.debug(f"Unloading handler \"{name}\"")
        sys.modules.pop(loaded.module_name, None)
        return True

    def installed(self, kind: Optional[HandlerKind] = None) -> List[Path]:
        """List installed handler files, optionally of one kind."""
        kinds = [kind] if kind is not None else list(HANDLER_KIND_ORDER)
        files = []
        for root in self.roots:
            for k in kinds:
                kind_dir = get_kind_dir(root, k)
                if kind_dir.is_dir():
                    files.extend(sorted(kind_dir.glob("*.py")))
        return files
