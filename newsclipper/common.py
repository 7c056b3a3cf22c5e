"""
Common utility functions for News Clipper.
"""

import logging
import os
import tempfile
import textwrap
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import requests
from requests.auth import HTTPProxyAuth
from rich.console import Console
from rich.logging import RichHandler


# Rich console for output
console = Console(stderr=True)


def setup_logging(
    name: str = "newsclipper",
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up logging with Rich handler."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    # Console handler with Rich
    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


# Default logger
logger = setup_logging()


def reformat(text: str, width: int = 80) -> str:
    """Collapse whitespace in a message and wrap it to a column width."""
    return textwrap.fill(" ".join(text.split()), width=width)


def http_get(
    url: str,
    timeout: int = 30,
    retries: int = 3,
    proxies: Optional[Dict[str, str]] = None,
    proxy_auth: Optional[tuple] = None,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
    before_attempt: Optional[Callable[[], None]] = None,
    time_left: Optional[Callable[[], Optional[float]]] = None,
) -> Optional[bytes]:
    """
    GET a URL with a bounded number of attempts.

    Every attempt uses the same timeout, shortened to whatever
    ``time_left`` reports when that is less. Carriage returns are left in
    place; callers that want text strip them.

    Args:
        url: URL to fetch
        timeout: Per-attempt timeout in seconds
        retries: Total number of attempts
        proxies: requests-style proxies mapping
        proxy_auth: (username, password) for proxy basic auth
        headers: Extra request headers
        session: Session to use instead of the requests module
        before_attempt: Called before each attempt (deadline checks)
        time_left: Returns seconds left before a deadline, or None

    Returns:
        Response body, or None if every attempt failed
    """
    getter = session or requests
    auth = HTTPProxyAuth(*proxy_auth) if proxy_auth and proxies else None

    attempts = max(1, retries)
    for attempt in range(1, attempts + 1):
        if before_attempt is not None:
            before_attempt()
        attempt_timeout = timeout
        if time_left is not None:
            left = time_left()
            if left is not None:
                attempt_timeout = min(timeout, max(left, 0.01))
        try:
            response = getter.get(
                url,
                timeout=attempt_timeout,
                proxies=proxies,
                headers=headers,
                auth=auth,
            )
            response.raise_for_status()
            return response.content
        except requests.RequestException as e:
            logger.debug(f"GET {url} failed (attempt {attempt}/{attempts}): {e}")
            if attempt < attempts:
                time.sleep(min(2 ** (attempt - 1), 5) * 0.1)

    logger.debug(f"GET {url} failed after {attempts} attempts")
    return None


def atomic_write(
    path: Path,
    data: Union[bytes, str],
    temp: Optional[Path] = None,
) -> None:
    """
    Write a file so that readers see either the old or the new content.

    The data goes to a temporary file in the same directory, is flushed
    to disk, and is then renamed over the destination. ``temp`` names the
    temporary file; by default a unique hidden name is generated.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode("utf-8") if isinstance(data, str) else data

    if temp is None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    else:
        tmp_name = str(temp)
        fd = os.open(tmp_name, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
