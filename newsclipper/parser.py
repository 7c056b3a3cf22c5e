"""
Finds News Clipper tags in a document and replaces them with output.

A tag is an HTML comment starting with "newsclipper" that holds
commands::

    <!--newsclipper
      <input name=slashdot>
      <filter name=limit number=5>
      <output name=array numcols=2>
    -->

Everything outside the tags is copied through unchanged.
"""

import re
from typing import Callable, List, Tuple

from newsclipper.common import logger
from newsclipper.interpreter import COMMAND_TYPES, Command, format_messages

TAG_PATTERN = re.compile(r"<!--\s*newsclipper\b(.*?)-->", re.IGNORECASE | re.DOTALL)
COMMAND_PATTERN = re.compile(r"<\s*([a-zA-Z]\w*)([^>]*)>", re.DOTALL)
ATTRIBUTE_PATTERN = re.compile(
    r"""([\w\-.:]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?""",
    re.DOTALL,
)
HEAD_END_PATTERN = re.compile(r"</head\s*>", re.IGNORECASE)


def parse_attributes(text: str) -> dict:
    """Parse tag attributes. Names are lower-cased; bare names map to themselves."""
    attributes = {}
    for match in ATTRIBUTE_PATTERN.finditer(text):
        name = match.group(1).lower()
        if match.group(2) is not None:
            value = match.group(2)
        elif match.group(3) is not None:
            value = match.group(3)
        elif match.group(4) is not None:
            value = match.group(4)
        else:
            value = name
        attributes[name] = value
    return attributes


def parse_commands(text: str) -> Tuple[List[Command], List[str]]:
    """
    Parse the commands inside a tag.

    Returns:
        (commands, messages) where messages describe commands that were
        skipped
    """
    commands = []
    messages = []
    for match in COMMAND_PATTERN.finditer(text):
        command_type = match.group(1).lower()
        attributes = parse_attributes(match.group(2))

        if "name" not in attributes:
            messages.append("A News Clipper command must have a \"name\" attribute.")
            continue

        if command_type not in COMMAND_TYPES:
            messages.append(f"Invalid News Clipper command '{command_type}' seen in input file.")
            continue

        commands.append(Command(command_type, attributes))
    return commands, messages


def process_document(
    text: str,
    execute: Callable[[List[Command]], str],
    generator: str = "",
) -> str:
    """
    Replace every News Clipper tag in a document with its output.

    Args:
        text: Document text
        execute: Runs a tag's commands and returns the replacement text
        generator: If set, a generator meta tag naming it is added
            before </head>

    Returns:
        The processed document
    """
    def replace(match: "re.Match") -> str:
        logger.debug("Found newsclipper tag")
        commands, messages = parse_commands(match.group(1))
        return format_messages(messages) + execute(commands)

    result = TAG_PATTERN.sub(replace, text)

    if generator:
        result = HEAD_END_PATTERN.sub(
            lambda m: f"<meta name=\"generator\" content=\"{generator}\">\n{m.group(0)}",
            result,
            count=1,
        )
    return result
