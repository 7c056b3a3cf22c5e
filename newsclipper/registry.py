"""
Client for the remote handler registry.

The registry answers three questions over plain HTTP GET requests:

    getinfo     what kind of handler is <name>        "Type : Acquisition"
    getversion  is there a newer compatible version   "not found" | "no update"
                                                      | "<version> [<kind>]"
    gethandler  the code of <name> at <version>       handler source |
                                                      "Handler not found"

Transport failures are retried a bounded number of times and then raised
as RegistryUnavailableError. Answers are memoized on the RunContext.
"""

import re
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

import requests

from newsclipper.common import http_get, logger, reformat
from newsclipper.config import ClipperConfig, HandlerKind
from newsclipper.context import RunContext
from newsclipper.errors import RegistryError, RegistryUnavailableError
from newsclipper.handler import looks_like_handler
from newsclipper.models import (
    RemoteVersionInfo,
    UpdateKind,
    VersionStatus,
    classify_update,
    parse_version,
)

TYPE_PATTERN = re.compile(r"Type +: *(\w+)")
VERSION_REPLY_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)(?:\s+(functional|bugfix))?\s*$", re.IGNORECASE)
NOT_FOUND_REPLY = "not found"
NO_UPDATE_REPLY = "no update"
HANDLER_NOT_FOUND_REPLY = "Handler not found"


class RegistryClient:
    """Queries the handler registry on behalf of one run."""

    def __init__(
        self,
        config: ClipperConfig,
        context: RunContext,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self.context = context
        self.session = session

    def _url(self, endpoint: str, **params: str) -> str:
        return f"{self.config.registry_url.rstrip('/')}/{endpoint}?{urlencode(params)}"

    def _download(self, url: str) -> str:
        logger.debug(f"Downloading URL: {url}")
        data = http_get(
            url,
            timeout=self.config.socket_timeout,
            retries=self.config.socket_tries,
            proxies=self.config.get_proxies(),
            proxy_auth=self.config.get_proxy_auth(),
            session=self.session,
            before_attempt=self.context.check_deadline,
            time_left=self.context.time_left,
        )
        if data is None:
            raise RegistryUnavailableError(f"Couldn't contact the handler registry at {url}")
        return data.decode("utf-8", errors="replace").replace("\r", "")

    def _query(self, endpoint: str, **params: str) -> str:
        """Download a registry reply, failing fast once the registry was unreachable."""
        if self.context.registry_failed:
            raise RegistryUnavailableError("The handler registry was unreachable earlier in this run")
        try:
            return self._download(self._url(endpoint, **params))
        except RegistryUnavailableError:
            self.context.registry_failed = True
            raise

    def query_type(self, name: str) -> HandlerKind:
        """
        Ask the registry what kind of handler a name is.

        Raises:
            RegistryUnavailableError: If the registry can't be reached
            RegistryError: If the reply can't be understood
        """
        name = name.lower()
        if name in self.context.handler_types:
            logger.debug(
                f"Reusing cached handler type information "
                f"({name} is {self.context.handler_types[name].value})"
            )
            return self.context.handler_types[name]

        logger.debug("Downloading handler type information.")
        reply = self._query(
            "getinfo",
            field="Name",
            string=name,
            print="Type",
            ncversion=self.config.protocol_version,
        )

        match = TYPE_PATTERN.search(reply)
        if not match:
            raise RegistryError(
                f"Couldn't parse handler type information fetched from server. "
                f"Fetched content was:\n{reply}"
            )
        try:
            kind = HandlerKind.parse(match.group(1))
        except ValueError as e:
            raise RegistryError(f"Server reported an unknown handler type for {name}: {e}")

        self.context.handler_types[name] = kind
        return kind

    def query_latest_version(
        self,
        name: str,
        protocol_version: str,
        want_bugfix_only: bool,
        local_version: Optional[str],
    ) -> RemoteVersionInfo:
        """
        Ask the registry for the newest compatible version of a handler.

        Args:
            name: Handler name
            protocol_version: Protocol version the versions must support
            want_bugfix_only: Only accept versions in the local version's
                functional line
            local_version: Installed version, or None if not installed

        Returns:
            RemoteVersionInfo with status not found, no update, or okay

        Raises:
            RegistryUnavailableError: If the registry can't be reached (and
                for every later query in this run)
            RegistryError: If the reply can't be understood
        """
        name = name.lower()
        logger.debug(f"Checking for a new version for handler \"{name}\"")
        mode = UpdateKind.BUGFIX.value if want_bugfix_only else UpdateKind.FUNCTIONAL.value
        reply = self._query(
            "getversion",
            name=name,
            ncversion=protocol_version,
            mode=mode,
            localversion=local_version or "",
        ).strip()

        return self.parse_version_reply(name, reply, want_bugfix_only, local_version)

    @staticmethod
    def parse_version_reply(
        name: str,
        reply: str,
        want_bugfix_only: bool,
        local_version: Optional[str],
    ) -> RemoteVersionInfo:
        """Interpret a getversion reply."""
        lowered = reply.strip().lower()
        if lowered == NOT_FOUND_REPLY:
            logger.debug(f"Server reports that handler \"{name}\" doesn't exist.")
            return RemoteVersionInfo.not_found()
        if lowered == NO_UPDATE_REPLY:
            logger.debug("No new version is available")
            return RemoteVersionInfo.no_update()

        match = VERSION_REPLY_PATTERN.match(reply.strip())
        if not match:
            raise RegistryError(f"Couldn't parse version information for {name}: {reply!r}")

        new_version = match.group(1)
        local = parse_version(local_version)
        if local is not None and Decimal(new_version) <= local:
            logger.debug("No new version is available")
            return RemoteVersionInfo.no_update()

        if match.group(2):
            update_kind = UpdateKind(match.group(2).lower())
        else:
            update_kind = classify_update(local_version, new_version)

        if local is None:
            update_kind = UpdateKind.FUNCTIONAL

        if want_bugfix_only and update_kind != UpdateKind.BUGFIX:
            raise RegistryError(
                f"Server offered a functional update ({new_version}) of {name} "
                f"for a bugfix update check"
            )

        logger.debug(
            f"A new version is available. New version: {new_version} "
            f"Old version: {local_version or '<NONE FOUND>'} Update type: {update_kind.value}"
        )
        return RemoteVersionInfo(
            status=VersionStatus.OKAY,
            version=new_version,
            update_kind=update_kind,
        )

    def fetch_code(self, name: str, version: str) -> Optional[str]:
        """
        Download the code of a handler version.

        Returns:
            The handler source, or None if the registry doesn't have it

        Raises:
            RegistryUnavailableError: If the registry can't be reached
            RegistryError: If the reply doesn't look like a handler
        """
        name = name.lower()
        logger.debug(f"Downloading code for handler \"{name}\"")

        if name in self.context.downloaded_code:
            logger.debug("Reusing already downloaded code.")
            return self.context.downloaded_code[name]

        reply = self._download(self._url(
            "gethandler",
            tag=name,
            ncversion=self.config.protocol_version,
            version=version,
        ))

        if reply.startswith(HANDLER_NOT_FOUND_REPLY):
            return None

        if not looks_like_handler(reply):
            raise RegistryError(reformat(
                f"Couldn't download handler {name}. The server sent something that "
                f"is not a handler. Message from server is: {reply[:200]}"
            ))

        self.context.downloaded_code[name] = reply
        return reply
