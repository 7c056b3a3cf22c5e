"""
Handler lifecycle management.

HandlerFactory.resolve() turns a handler name into a ready-to-use handler
instance. On the way it:

1. asks the gate whether the handler may be used at all
2. refuses installed handlers written for another protocol version
3. decides whether to ask the registry for a functional or bugfix update
4. downloads updates automatically, after asking, or not at all
5. installs downloaded code atomically next to the old version
6. drops the old in-process definition after an install
7. loads the handler and creates an instance

Each stage runs at most once per handler per run. Problems that don't stop
the handler from being used are recorded on the RunContext; problems that
do are raised as HandlerResolutionError subclasses.
"""

import sys
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import click

from newsclipper.common import atomic_write, logger, reformat
from newsclipper.config import (
    BUGFIX_CHECK_INTERVAL,
    FUNCTIONAL_CHECK_INTERVAL,
    ClipperConfig,
    HandlerKind,
    get_kind_dir,
)
from newsclipper.context import RunContext
from newsclipper.errors import (
    HandlerGateRejectedError,
    HandlerIncompatibleError,
    HandlerNotFoundError,
    RegistryError,
    RegistryUnavailableError,
)
from newsclipper.gate import AllowAllGate, Gate
from newsclipper.handler import Handler, read_declared_kind, third_party_imports
from newsclipper.loader import HandlerLoader, handler_filename
from newsclipper.models import (
    CheckKind,
    HandlerDescriptor,
    RemoteVersionInfo,
    UpdateKind,
    versions_equal,
)
from newsclipper.registry import RegistryClient
from newsclipper.state import StateStore


class UpdateOutcome(str, Enum):
    """Result of an update attempt for one handler."""
    UPDATED = "updated"
    NOT_UPDATED = "not updated"
    FAILED = "failed"


def default_prompt(question: str) -> bool:
    return click.confirm(question, default=False, err=True)


class HandlerFactory:
    """Resolves handler names to handler instances."""

    def __init__(
        self,
        config: ClipperConfig,
        context: RunContext,
        registry: RegistryClient,
        state: StateStore,
        loader: HandlerLoader,
        gate: Optional[Gate] = None,
        prompt: Optional[Callable[[str], bool]] = None,
        fetcher=None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.context = context
        self.registry = registry
        self.state = state
        self.loader = loader
        self.gate = gate or AllowAllGate()
        self.prompt = prompt or default_prompt
        self.fetcher = fetcher
        self.clock = clock

    def resolve(self, name: str) -> Handler:
        """
        Get a handler instance by name, installing or updating it as needed.

        Args:
            name: Handler name (case-insensitive)

        Returns:
            A new instance of the handler class

        Raises:
            HandlerGateRejectedError: If the gate refuses the handler
            HandlerIncompatibleError: If the installed handler uses another
                protocol version
            HandlerLoadError: If the handler file fails to load
            HandlerNotFoundError: If the handler is not installed and could
                not be downloaded
            ExecutionTimeoutError: If the run deadline expires
        """
        name = name.lower()
        logger.debug(f"Resolving handler \"{name}\"")

        self._check_gate(name)
        self._check_compatibility(name)
        self._do_update(name)

        loaded = self.loader.load(name)
        if loaded is None:
            raise HandlerNotFoundError(
                name,
                f"Handler {name} is not installed and could not be downloaded.",
            )

        for warning in loaded.warnings:
            self.context.report(name, warning)

        logger.debug(f"Creating handler \"{name}\"")
        handler = loaded.handler_class(fetcher=self.fetcher)
        handler.handler_name = name
        handler.kind = loaded.kind
        return handler

    # Gate

    def _kind_of(self, name: str) -> HandlerKind:
        found = self.loader.locate(name)
        if found is not None:
            return found[0]
        return self.registry.query_type(name)

    def _check_gate(self, name: str) -> None:
        if name in self.context.gate_rejected:
            raise HandlerGateRejectedError(name, self.context.gate_rejected[name])

        if name in self.context.gate_checked:
            logger.debug(f"Skipping already checked handler \"{name}\".")
            return
        self.context.gate_checked.add(name)

        logger.debug(f"Checking if handler \"{name}\" is okay to use.")
        try:
            refusal = self.gate.check(name, self._kind_of)
        except RegistryError as e:
            refusal = reformat(
                f"Couldn't determine the type of handler {name}, which is needed "
                f"to decide if it may be used. Maybe the server is down. "
                f"Try again in a while. ({e})"
            )

        if refusal is not None:
            self.context.gate_rejected[name] = refusal
            raise HandlerGateRejectedError(name, refusal)

    # Compatibility

    def _check_compatibility(self, name: str) -> None:
        if name in self.context.incompatible:
            raise HandlerIncompatibleError(
                name, self.context.incompatible[name], self.config.protocol_version
            )

        if name in self.context.compat_checked:
            logger.debug(f"Skipping handler \"{name}\" (already checked compatibility).")
            return
        self.context.compat_checked.add(name)

        logger.debug(f"Checking if handler \"{name}\" is of a compatible version.")
        descriptor = self.loader.describe(name)
        if descriptor is None or descriptor.protocol_version is None:
            return

        logger.debug(
            f"Handler \"{name}\" was written for protocol version "
            f"{descriptor.protocol_version}, and this version of News Clipper is "
            f"compatible with version {self.config.protocol_version}."
        )
        if not versions_equal(descriptor.protocol_version, self.config.protocol_version):
            error = HandlerIncompatibleError(
                name, descriptor.protocol_version, self.config.protocol_version
            )
            self.context.incompatible[name] = descriptor.protocol_version
            self.context.report(name, reformat(error.message))
            raise error

    # Updates

    def _do_update(self, name: str) -> UpdateOutcome:
        """
        Download or update the handler if necessary.

        Updates happen if the handler isn't installed anywhere, if a bugfix
        version is available and auto_download_bugfix_updates is set, or
        if check_for_updates is set and any newer version is available.
        """
        if name in self.context.update_checked:
            logger.debug(f"Skipping already checked handler \"{name}\".")
            return UpdateOutcome.NOT_UPDATED
        self.context.update_checked.add(name)

        logger.debug(f"Checking if handler \"{name}\" needs to be updated.")
        self.context.check_deadline()

        descriptor = self.loader.describe(name)
        if descriptor is None:
            logger.debug("Handler isn't installed, so we need to download it.")
            return self._install_missing(name)

        outcome = self._functional_update(descriptor)
        if outcome == UpdateOutcome.NOT_UPDATED:
            outcome = self._bugfix_update(descriptor)

        if outcome == UpdateOutcome.UPDATED:
            self.loader.unload(name)
        return outcome

    def _stamp(self, name: str, kinds: List[CheckKind]) -> None:
        now = self.clock()
        for kind in kinds:
            self.state.mark_checked(name, kind, now)

    def _install_missing(self, name: str) -> UpdateOutcome:
        try:
            info = self.registry.query_latest_version(
                name, self.config.protocol_version, False, None
            )
        except RegistryUnavailableError:
            self.context.report(name, reformat(
                f"Couldn't determine which version of the handler {name} to download "
                f"because the server is down. Try again in a while."
            ))
            return UpdateOutcome.FAILED
        except RegistryError as e:
            self.context.report(name, reformat(str(e)))
            return UpdateOutcome.FAILED

        if not info.exists:
            self.context.report(name, reformat(
                f"The handler server reports that the handler {name} is not in the database."
            ))
            return UpdateOutcome.FAILED

        if not info.has_update:
            self.context.report(name, reformat(
                f"The handler server reported no version of handler {name} to "
                f"download, but the handler is not installed."
            ))
            return UpdateOutcome.FAILED

        logger.debug("There is a remote handler available.")
        outcome = self._download(name, info.version, None)
        if outcome == UpdateOutcome.UPDATED:
            self._stamp(name, [CheckKind.FUNCTIONAL, CheckKind.BUGFIX])
        return outcome

    def _functional_update(self, descriptor: HandlerDescriptor) -> UpdateOutcome:
        name = descriptor.name

        # Functional updates are only done when asked for
        if not self.config.check_for_updates:
            logger.debug("Skipping functional update check -- update checks not requested")
            return UpdateOutcome.NOT_UPDATED

        if not self.state.check_due(name, CheckKind.FUNCTIONAL, FUNCTIONAL_CHECK_INTERVAL, self.clock()):
            logger.debug("Don't need to check for a functional update yet.")
            return UpdateOutcome.NOT_UPDATED

        try:
            info = self.registry.query_latest_version(
                name, self.config.protocol_version, False, descriptor.local_code_version
            )
        except RegistryError as e:
            # No timestamp, so the check is retried next run
            self.context.report(name, reformat(
                f"Couldn't determine if there is a newer functional update version "
                f"of {name} available. Try again in a while. ({e})"
            ))
            return UpdateOutcome.FAILED

        # A functional check also covers bugfix versions
        stamps = [CheckKind.FUNCTIONAL, CheckKind.BUGFIX]

        if not info.has_update:
            logger.debug("There is no new functional or bugfix update version.")
            self._stamp(name, stamps)
            return UpdateOutcome.NOT_UPDATED

        logger.debug(f"There is a new {info.update_kind.value} version.")
        auto = self.config.auto_download_all or (
            info.update_kind == UpdateKind.BUGFIX and self.config.auto_download_bugfix_updates
        )
        return self._offer_update(descriptor, info, auto, stamps)

    def _bugfix_update(self, descriptor: HandlerDescriptor) -> UpdateOutcome:
        name = descriptor.name

        if not (self.config.check_for_updates or self.config.auto_download_bugfix_updates):
            logger.debug(
                "Skipping bugfix update check -- neither update checks nor "
                "auto_download_bugfix_updates was specified"
            )
            return UpdateOutcome.NOT_UPDATED

        if not self.state.check_due(name, CheckKind.BUGFIX, BUGFIX_CHECK_INTERVAL, self.clock()):
            logger.debug("Don't need to check for a bugfix update yet.")
            return UpdateOutcome.NOT_UPDATED

        try:
            info = self.registry.query_latest_version(
                name, self.config.protocol_version, True, descriptor.local_code_version
            )
        except RegistryError as e:
            self.context.report(name, reformat(
                f"Couldn't determine if there is a newer bugfix update version of "
                f"{name} available. Try again in a while. ({e})"
            ))
            return UpdateOutcome.FAILED

        stamps = [CheckKind.BUGFIX]

        if not info.has_update:
            logger.debug("There is no new bugfix update version.")
            self._stamp(name, stamps)
            return UpdateOutcome.NOT_UPDATED

        logger.debug("There is a new bugfix version.")
        auto = self.config.auto_download_all or self.config.auto_download_bugfix_updates
        return self._offer_update(descriptor, info, auto, stamps)

    def _is_interactive(self) -> bool:
        if self.config.interactive is not None:
            return self.config.interactive
        return sys.stdin is not None and sys.stdin.isatty()

    def _offer_update(
        self,
        descriptor: HandlerDescriptor,
        info: RemoteVersionInfo,
        auto: bool,
        stamps: List[CheckKind],
    ) -> UpdateOutcome:
        name = descriptor.name

        if auto:
            logger.debug(f"Doing automatic download for handler \"{name}\"")
        elif self._is_interactive():
            question = (
                f"There is a newer version of handler \"{name}\" "
                f"({descriptor.local_code_version} -> {info.version}). "
                f"Would you like News Clipper to attempt to download it?"
            )
            if not self.prompt(question):
                self._stamp(name, stamps)
                return UpdateOutcome.NOT_UPDATED
        else:
            if info.update_kind == UpdateKind.BUGFIX:
                reason = "auto_download_bugfix_updates is not enabled in your configuration"
            else:
                reason = "automatic download of all updates was not requested"
            self.context.report(name, reformat(
                f"A {info.update_kind.value} update to handler \"{name}\" is available, "
                f"but it can't be downloaded because {reason}, and since News Clipper "
                f"can't ask you interactively."
            ))
            self._stamp(name, stamps)
            return UpdateOutcome.NOT_UPDATED

        outcome = self._download(name, info.version, descriptor)
        if outcome == UpdateOutcome.UPDATED:
            self._stamp(name, stamps)
        return outcome

    # Download and install

    def _download(
        self,
        name: str,
        version: str,
        descriptor: Optional[HandlerDescriptor],
    ) -> UpdateOutcome:
        logger.debug(f"Downloading handler {name}, version {version}")

        try:
            code = self.registry.fetch_code(name, version)
        except RegistryError as e:
            self.context.report(name, reformat(f"Couldn't download handler {name}. {e}"))
            return UpdateOutcome.FAILED

        if code is None:
            self.context.report(name, reformat(
                f"Couldn't install the handler {name}. The handler server reports "
                f"that the handler is not in the database."
            ))
            return UpdateOutcome.FAILED

        try:
            path = self._install(name, code, descriptor)
        except OSError as e:
            self.context.report(name, reformat(
                f"Handler {name} was downloaded, but could not be saved. The message "
                f"from the operating system is: {e}"
            ))
            return UpdateOutcome.FAILED

        logger.warning(f"The {name} handler has been downloaded and saved as {path}")

        modules = third_party_imports(code)
        if modules:
            logger.warning(
                f"The handler uses the following modules: {', '.join(modules)}. "
                f"Make sure you have them installed."
            )

        return UpdateOutcome.UPDATED

    def _install(
        self,
        name: str,
        code: str,
        descriptor: Optional[HandlerDescriptor],
    ) -> Path:
        """
        Write handler code to its permanent location.

        Updates go where the old version is; new handlers go under the
        first handler root, in the directory for the kind the code declares.
        The file only appears under its permanent name once fully written.
        """
        if descriptor is not None and descriptor.install_path is not None:
            dest_dir = descriptor.install_path.parent
            logger.debug(f"Replacing handler located in {dest_dir}")
        else:
            kind = read_declared_kind(code)
            dest_dir = get_kind_dir(self.config.install_root, kind)
            logger.debug(f"Saving new handler to {dest_dir}")

        path = dest_dir / handler_filename(name)
        atomic_write(path, code)
        return path
