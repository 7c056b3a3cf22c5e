"""
Document runs.

A run processes one or more documents in order under a single deadline.
Each output document is written to "<output>.temp" and renamed into place
only once it is complete, so a failed or timed-out run leaves the previous
output untouched.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import requests

from newsclipper.acquisition import Fetcher
from newsclipper.cache import ContentCache
from newsclipper.common import atomic_write, logger
from newsclipper.config import ClipperConfig
from newsclipper.context import RunContext
from newsclipper.errors import ExecutionTimeoutError
from newsclipper.factory import HandlerFactory
from newsclipper.gate import Gate
from newsclipper.interpreter import Interpreter
from newsclipper.loader import HandlerLoader
from newsclipper.parser import process_document
from newsclipper.registry import RegistryClient
from newsclipper.state import StateStore


class Deadline:
    """Total time allowed for a run. Zero or None seconds means no limit."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self.started = clock()

    @property
    def expired(self) -> bool:
        if not self.seconds:
            return False
        return self.clock() - self.started >= self.seconds

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no limit."""
        if not self.seconds:
            return None
        return max(0.0, self.seconds - (self.clock() - self.started))

    def check(self) -> None:
        """Raise ExecutionTimeoutError once the deadline has passed."""
        if self.expired:
            raise ExecutionTimeoutError(
                f"News Clipper has been running for more than {self.seconds} seconds "
                f"and was stopped."
            )


@dataclass
class Clipper:
    """The collaborators of one run, wired together."""
    config: ClipperConfig
    context: RunContext
    cache: ContentCache
    state: StateStore
    registry: RegistryClient
    loader: HandlerLoader
    fetcher: Fetcher
    factory: HandlerFactory
    interpreter: Interpreter

    @classmethod
    def create(
        cls,
        config: ClipperConfig,
        gate: Optional[Gate] = None,
        prompt: Optional[Callable[[str], bool]] = None,
        session: Optional[requests.Session] = None,
        deadline: Optional[Deadline] = None,
    ) -> "Clipper":
        """Create a fresh run from a configuration."""
        config.validate()
        deadline = deadline or Deadline(config.script_timeout)

        context = RunContext(
            deadline_check=deadline.check, deadline_remaining=deadline.remaining
        )
        cache = ContentCache(config.cache_dir, config.max_cache_size)
        state = StateStore(config.state_file)
        registry = RegistryClient(config, context, session=session)
        loader = HandlerLoader(config.handler_locations)
        fetcher = Fetcher(cache, config, context, session=session)
        factory = HandlerFactory(
            config, context, registry, state, loader,
            gate=gate, prompt=prompt, fetcher=fetcher,
        )
        interpreter = Interpreter(factory, context)

        return cls(
            config=config,
            context=context,
            cache=cache,
            state=state,
            registry=registry,
            loader=loader,
            fetcher=fetcher,
            factory=factory,
            interpreter=interpreter,
        )


def temp_path(output_path: Path) -> Path:
    return output_path.with_name(output_path.name + ".temp")


def run_document(
    input_path: Path,
    output_path: Path,
    clipper: Clipper,
    generator: str = "",
) -> Path:
    """
    Process one document and publish the result.

    Args:
        input_path: Document with News Clipper tags
        output_path: Where to write the processed document
        clipper: Collaborators for this run
        generator: Value for the generator meta tag, if any

    Returns:
        The output path

    Raises:
        ExecutionTimeoutError: If the run deadline expires
    """
    logger.info(f"Processing {input_path} -> {output_path}")
    text = input_path.read_text(encoding="utf-8")

    def execute(commands):
        clipper.context.check_deadline()
        return clipper.interpreter.execute(commands)

    result = process_document(text, execute, generator=generator)

    # Nothing is published once the deadline has passed
    clipper.context.check_deadline()

    atomic_write(output_path, result, temp=temp_path(output_path))
    return output_path


def run_all(
    documents: Iterable[Tuple[Path, Path]],
    clipper: Clipper,
    generator: str = "",
) -> List[Path]:
    """
    Process documents in order.

    A timeout stops the run; documents already written stay published.

    Returns:
        Output paths written
    """
    written = []
    for input_path, output_path in documents:
        written.append(run_document(input_path, output_path, clipper, generator=generator))
    return written
