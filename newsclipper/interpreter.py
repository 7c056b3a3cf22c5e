"""
Runs the commands of one News Clipper tag.

A tag is a sequence of commands: one input, any number of filters, and
an output. The input handler's data flows through the filters to the
output handler, whose result replaces the tag in the document. When a tag
only names an input, the input handler supplies default filters and an
output.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from newsclipper.common import logger, reformat
from newsclipper.context import RunContext
from newsclipper.datakinds import accepts, is_empty, kind_of, unwrap
from newsclipper.errors import (
    DataKindMismatchError,
    ExecutionTimeoutError,
    HandlerResolutionError,
)
from newsclipper.handler import Handler

COMMAND_TYPES = ("input", "filter", "output")


@dataclass
class Command:
    """One <input>, <filter> or <output> command."""
    type: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def handler_name(self) -> str:
        return self.attributes.get("name", "").lower()

    @property
    def arguments(self) -> Dict[str, str]:
        """Attributes passed to the handler (everything except the name)."""
        return {k: v for k, v in self.attributes.items() if k != "name"}


def format_messages(messages: List[str]) -> str:
    """Render messages as one HTML comment block."""
    if not messages:
        return ""
    body = "\n".join(message.replace("--", "- -") for message in messages)
    return f"<!--News Clipper message:\n{body}\n-->\n"


class _TagAborted(Exception):
    """Stops the remaining commands of a tag."""


class Interpreter:
    """Executes tag commands with handlers from a HandlerFactory."""

    def __init__(self, factory, context: RunContext):
        self.factory = factory
        self.context = context

    def _resolve(self, name: str, messages: List[str]) -> Optional[Handler]:
        try:
            return self.factory.resolve(name)
        except HandlerResolutionError as e:
            logger.debug(f"Couldn't resolve handler {name}: {e.message}")
            messages.append(reformat(e.message))
            return None

    def _default_commands(self, commands: List[Command], messages: List[str]) -> List[Command]:
        # Defaults only apply when the tag has nothing but an input
        if len(commands) != 1 or commands[0].type != "input":
            return commands

        handler = self._resolve(commands[0].handler_name, messages)
        if handler is None:
            return []

        defaults = handler.default_handlers(commands[0].arguments)
        if defaults:
            logger.debug("Adding default filter and output handlers")

        result = list(commands)
        for i, attributes in enumerate(defaults):
            command_type = "output" if i == len(defaults) - 1 else "filter"
            result.append(Command(command_type, {k.lower(): v for k, v in attributes.items()}))
        return result

    def _check_types(self, data: Any, handler: Handler, command: Command) -> None:
        expected = handler.filter_types if command.type == "filter" else handler.output_types
        actual = kind_of(data)

        logger.debug(
            f"Comparing data type \"{actual.value}\" to expected types "
            f"\"{', '.join(k.value for k in expected)}\"."
        )
        if not accepts(actual, expected):
            raise DataKindMismatchError(reformat(
                f"The data expected by \"{command.handler_name}\" is supposed to be of "
                f"type \"{', '.join(k.value for k in expected)}\", but it's actually of "
                f"type \"{actual.value}\". This normally means that your sequence of "
                f"News Clipper commands is broken. Try changing \"{command.handler_name}\" "
                f"to a more suitable handler, or use a filter to convert the data."
            ))

    def _run_command(self, command: Command, data: Any, messages: List[str], output: List[str]) -> Any:
        handler = self._resolve(command.handler_name, messages)
        if handler is None:
            raise _TagAborted()

        if command.type == "input":
            logger.debug(f"Calling get function for handler {command.handler_name}.")
            data = handler.get(command.arguments)
            if is_empty(data):
                raise _TagAborted()
            return data

        if data is None:
            raise _TagAborted()

        self._check_types(data, handler, command)

        if command.type == "filter":
            logger.debug(f"Calling filter function for handler {command.handler_name}.")
            data = handler.filter(command.arguments, data)
            if is_empty(data):
                messages.append("Couldn't get data. Handler's filter function returned nothing.")
                raise _TagAborted()
            return data

        logger.debug(f"Calling output function for handler {command.handler_name}.")
        result = unwrap(handler.output(command.arguments, data))
        if isinstance(result, bytes):
            result = result.decode("utf-8", errors="replace")
        if result is not None:
            output.append(str(result))
        return data

    def execute(self, commands: List[Command]) -> str:
        """
        Run a tag's commands.

        Returns:
            The output handlers' text followed by a message block for any
            problems, suitable for replacing the tag

        Raises:
            ExecutionTimeoutError: If the run deadline expires
        """
        logger.debug(f"Executing {len(commands)} commands.")
        messages: List[str] = []
        output: List[str] = []

        names = [command.handler_name for command in commands]
        commands = self._default_commands(commands, messages)
        names += [command.handler_name for command in commands if command.handler_name not in names]

        data = None
        try:
            for command in commands:
                self.context.check_deadline()
                data = self._run_command(command, data, messages, output)
        except _TagAborted:
            logger.debug("Aborting execution for this News Clipper tag.")
            messages.append("Aborting execution for this News Clipper tag.")
        except DataKindMismatchError as e:
            messages.append(str(e))
        except ExecutionTimeoutError:
            raise
        except Exception as e:
            # Handler code failed, only this tag is affected
            logger.error(f"Handler failed while processing a tag: {e}")
            messages.append(f"Handler error: {e}")
            messages.append("Aborting execution for this News Clipper tag.")

        messages = list(dict.fromkeys(self.context.pop_messages(names) + messages))
        return "".join(output) + format_messages(messages)
