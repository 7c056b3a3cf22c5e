"""
Kinds of data passed between handlers.

The set is closed. Each kind may have one parent; data of a kind is
usable wherever its parent (or any ancestor) is expected.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional


class DataKind(str, Enum):
    """Kinds of data produced and accepted by handlers."""
    STRING = "String"
    HTML = "Html"
    LINK = "Link"
    IMAGE = "Image"
    ARRAY = "Array"
    ARRAY_OF_STRING = "ArrayOfString"
    ARRAY_OF_LINK = "ArrayOfLink"
    ARRAY_OF_IMAGE = "ArrayOfImage"
    ARRAY_OF_HASH = "ArrayOfHash"
    HASH = "Hash"
    HASH_OF_STRING = "HashOfString"
    TABLE = "Table"
    THREAD = "Thread"


PARENT_KINDS: Dict[DataKind, Optional[DataKind]] = {
    DataKind.STRING: None,
    DataKind.HTML: DataKind.STRING,
    DataKind.LINK: DataKind.STRING,
    DataKind.IMAGE: DataKind.STRING,
    DataKind.ARRAY: None,
    DataKind.ARRAY_OF_STRING: DataKind.ARRAY,
    DataKind.ARRAY_OF_LINK: DataKind.ARRAY_OF_STRING,
    DataKind.ARRAY_OF_IMAGE: DataKind.ARRAY,
    DataKind.ARRAY_OF_HASH: DataKind.ARRAY,
    DataKind.HASH: None,
    DataKind.HASH_OF_STRING: DataKind.HASH,
    DataKind.TABLE: None,
    DataKind.THREAD: None,
}


@dataclass(frozen=True)
class TypedData:
    """A value tagged with its data kind."""
    kind: DataKind
    value: Any


def is_compatible(actual: DataKind, expected: DataKind) -> bool:
    """Check if data of kind `actual` can be used where `expected` is required."""
    kind: Optional[DataKind] = actual
    while kind is not None:
        if kind == expected:
            return True
        kind = PARENT_KINDS[kind]
    return False


def accepts(actual: DataKind, expected: Iterable[DataKind]) -> bool:
    """Check `actual` against any of several expected kinds."""
    return any(is_compatible(actual, kind) for kind in expected)


def kind_of(data: Any) -> DataKind:
    """Infer the kind of a value returned by a handler."""
    if isinstance(data, TypedData):
        return data.kind
    if isinstance(data, (str, bytes)):
        return DataKind.STRING
    if isinstance(data, dict):
        if all(isinstance(v, str) for v in data.values()):
            return DataKind.HASH_OF_STRING
        return DataKind.HASH
    if isinstance(data, (list, tuple)):
        if data and all(isinstance(v, str) for v in data):
            return DataKind.ARRAY_OF_STRING
        if data and all(isinstance(v, dict) for v in data):
            return DataKind.ARRAY_OF_HASH
        return DataKind.ARRAY
    raise TypeError(f"Can't determine data kind of {type(data).__name__}")


def unwrap(data: Any) -> Any:
    """Get the plain value of possibly-tagged data."""
    return data.value if isinstance(data, TypedData) else data


def is_empty(data: Any) -> bool:
    """Check if handler output carries nothing."""
    value = unwrap(data)
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict)):
        return len(value) == 0
    return False
