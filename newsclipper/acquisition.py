"""
Helpers for acquisition handlers: cached URL fetching and HTML extraction.
"""

import re
from datetime import datetime
from typing import Iterable, Optional, Union
from urllib.parse import urljoin

import requests

from newsclipper.cache import ContentCache
from newsclipper.common import http_get, logger
from newsclipper.config import ClipperConfig
from newsclipper.context import RunContext
from newsclipper.models import CacheStatus, UpdateTimeSpec
from newsclipper.schedule import parse_update_times

LINK_PATTERN = re.compile(
    r"""(<\s*(?:a|img|area)\b[^>]*(?:href|src)\s*=\s*['"]?)([^'"> ]+)(['"]?[^>]*>)""",
    re.IGNORECASE | re.DOTALL,
)


def fetch_with_cache(
    url: str,
    update_times: Union[UpdateTimeSpec, Iterable[str]],
    cache: ContentCache,
    config: ClipperConfig,
    session: Optional[requests.Session] = None,
    reload: bool = False,
    context: Optional[RunContext] = None,
    handler_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[bytes]:
    """
    Get the content of a URL, from the cache if it is still valid.

    Args:
        url: URL to fetch
        update_times: When the content changes, or ["always"]
        cache: Content cache
        config: Network settings
        session: requests session to use
        reload: Ask proxies for fresh content (Pragma: no-cache)
        context: Run context for deadline checks and messages
        handler_name: Handler to attach failure messages to
        now: Current time (defaults to the wall clock)

    Returns:
        Fresh or cached content, or None if the URL couldn't be fetched
        and nothing is cached

    Raises:
        CacheCorruptionError: If the cache registry lists a missing file
    """
    spec = update_times if isinstance(update_times, UpdateTimeSpec) else parse_update_times(update_times)

    logger.debug(f"Getting URL: {url}")
    if spec.always:
        logger.debug("\"always\" specified. Skipping cache check")

    cached, status = cache.lookup(url, spec, now=now)
    if status == CacheStatus.VALID and not spec.always:
        return cached

    headers = {"Pragma": "no-cache"} if reload else None
    data = http_get(
        url,
        timeout=config.socket_timeout,
        retries=config.socket_tries,
        proxies=config.get_proxies(),
        proxy_auth=config.get_proxy_auth(),
        headers=headers,
        session=session,
        before_attempt=context.check_deadline if context is not None else None,
        time_left=context.time_left if context is not None else None,
    )

    if data is None:
        if status == CacheStatus.STALE:
            logger.debug("HTTP request failed, but there is cached data available")
            _report(context, handler_name, f"Couldn't get {url}. Using cached data instead.")
            return cached
        logger.debug("HTTP request failed, and there is no cached data available")
        _report(
            context,
            handler_name,
            f"Couldn't get {url}, and there is no cached data available.",
        )
        return None

    # "always" data is never trusted later, so it isn't kept
    if not spec.always:
        cache.store(url, data, now=now)
    return data


def _report(context: Optional[RunContext], handler_name: Optional[str], message: str) -> None:
    if context is not None and handler_name:
        context.report(handler_name, message)
    else:
        logger.warning(message)


class Fetcher:
    """Cached URL fetching bound to one run's cache, config and context."""

    def __init__(
        self,
        cache: ContentCache,
        config: ClipperConfig,
        context: Optional[RunContext] = None,
        session: Optional[requests.Session] = None,
    ):
        self.cache = cache
        self.config = config
        self.context = context
        self.session = session

    def fetch(
        self,
        url: str,
        update_times: Union[UpdateTimeSpec, Iterable[str]],
        reload: bool = False,
        handler_name: Optional[str] = None,
    ) -> Optional[bytes]:
        return fetch_with_cache(
            url,
            update_times,
            self.cache,
            self.config,
            session=self.session,
            reload=reload,
            context=self.context,
            handler_name=handler_name,
        )


def extract_text(html: str, start_pattern: str, end_pattern: str) -> Optional[str]:
    """
    Get the text between two regular expressions.

    '^' as the start pattern means the start of the document, '$' as the
    end pattern means its end.

    Returns:
        The text between the patterns, '' if nothing is between them, or
        None if the start pattern doesn't occur
    """
    if start_pattern != "^" and not re.search(start_pattern, html, re.DOTALL):
        return None

    if start_pattern == "^" and end_pattern == "$":
        return html

    if start_pattern == "^":
        pattern = f"(.*?){end_pattern}"
    elif end_pattern == "$":
        pattern = f"{start_pattern}(.*)"
    else:
        pattern = f"{start_pattern}(.*?){end_pattern}"

    match = re.search(pattern, html, re.DOTALL)
    if not match:
        return ""
    return match.group(1)


def make_links_absolute(base_url: str, html: str) -> str:
    """Rewrite relative href/src values in a, img and area tags."""
    return LINK_PATTERN.sub(
        lambda m: m.group(1) + urljoin(base_url, m.group(2)) + m.group(3),
        html,
    )


def get_html(handler, url: str, start_pattern: str = "^", end_pattern: str = "$") -> Optional[str]:
    """
    Fetch a page for a handler and cut out the HTML between two patterns.

    Links in the result are made absolute.

    Returns:
        The HTML, or None if the page couldn't be fetched or the section
        is empty
    """
    content = handler.get_url(url)
    if content is None:
        return None

    html = content.decode("utf-8", errors="replace").replace("\r", "")
    section = extract_text(html, start_pattern, end_pattern)
    if not section:
        return None
    return make_links_absolute(url, section)
