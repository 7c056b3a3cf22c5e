"""
Data models for News Clipper using Pydantic for validation.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from newsclipper.config import HandlerKind


ALWAYS = "always"


class UpdateKind(str, Enum):
    """Kinds of handler updates."""
    FUNCTIONAL = "functional"
    BUGFIX = "bugfix"


class CheckKind(str, Enum):
    """Kinds of update checks tracked in the state store."""
    FUNCTIONAL = "functional"
    BUGFIX = "bugfix"

    def state_key(self, handler_name: str) -> str:
        """State store key holding the last check time for a handler."""
        return f"last_{self.value}_check_{handler_name.lower()}"


class VersionStatus(str, Enum):
    """Outcome of a registry version query."""
    OKAY = "okay"
    NOT_FOUND = "not found"
    NO_UPDATE = "no update"


class CacheStatus(str, Enum):
    """Freshness of a cached URL."""
    VALID = "valid"
    STALE = "stale"
    NOT_FOUND = "not found"


def parse_version(version: Union[str, float, Decimal, None]) -> Optional[Decimal]:
    """Parse a handler version like '1.02' into a Decimal."""
    if version is None:
        return None
    try:
        return Decimal(str(version).strip())
    except InvalidOperation:
        return None


def functional_component(version: Union[str, Decimal]) -> int:
    """Get the integer (functional) component of a version."""
    parsed = parse_version(version)
    if parsed is None:
        raise ValueError(f"Invalid version: {version!r}")
    return int(parsed)


def classify_update(local_version: Optional[str], new_version: str) -> UpdateKind:
    """
    Classify an update relative to the local version.

    A new version sharing the local version's integer component is a
    bugfix update. Anything else, including a first install, is functional.
    """
    if local_version is None:
        return UpdateKind.FUNCTIONAL
    if functional_component(local_version) == functional_component(new_version):
        return UpdateKind.BUGFIX
    return UpdateKind.FUNCTIONAL


def versions_equal(v1: Optional[str], v2: Optional[str]) -> bool:
    """Compare two versions numerically ('1.10' == '1.1')."""
    p1, p2 = parse_version(v1), parse_version(v2)
    if p1 is None or p2 is None:
        return v1 == v2
    return p1 == p2


class HandlerDescriptor(BaseModel):
    """Identity of an installed or downloaded handler. Replaced, never mutated."""
    model_config = ConfigDict(frozen=True)

    name: str
    kind: HandlerKind
    install_path: Optional[Path] = None
    local_code_version: Optional[str] = None
    protocol_version: Optional[str] = None

    @field_validator("name")
    @classmethod
    def lower_name(cls, value: str) -> str:
        return value.lower()

    @property
    def installed(self) -> bool:
        """Check if the handler exists on disk."""
        return self.install_path is not None


class RemoteVersionInfo(BaseModel):
    """Result of a registry version query for one handler."""
    model_config = ConfigDict(frozen=True)

    status: VersionStatus
    version: Optional[str] = None
    update_kind: Optional[UpdateKind] = None

    @property
    def exists(self) -> bool:
        """Check if the registry knows the handler."""
        return self.status != VersionStatus.NOT_FOUND

    @property
    def has_update(self) -> bool:
        """Check if a newer version is available."""
        return self.status == VersionStatus.OKAY

    @classmethod
    def not_found(cls) -> "RemoteVersionInfo":
        return cls(status=VersionStatus.NOT_FOUND)

    @classmethod
    def no_update(cls) -> "RemoteVersionInfo":
        return cls(status=VersionStatus.NO_UPDATE)


class CacheEntry(BaseModel):
    """One line of the content cache registry."""
    model_config = ConfigDict(frozen=True)

    source_url: str
    storage_key: str
    byte_size: int = Field(ge=0)
    fetched_at: float

    @field_validator("source_url", "storage_key")
    @classmethod
    def no_spaces(cls, value: str) -> str:
        if not value or any(c.isspace() for c in value):
            raise ValueError("value must be non-empty and contain no whitespace")
        return value

    def to_line(self) -> str:
        """Serialize to a registry line."""
        return f"{self.source_url} {self.storage_key} {self.byte_size} {int(self.fetched_at)}"

    @classmethod
    def from_line(cls, line: str) -> "CacheEntry":
        """Parse a registry line like '<url> <file> <size> <time>'."""
        parts = line.split(" ")
        if len(parts) != 4:
            raise ValueError(f"Malformed cache registry line: {line!r}")
        url, filename, size, fetched_at = parts
        return cls(
            source_url=url,
            storage_key=filename,
            byte_size=int(size),
            fetched_at=float(fetched_at),
        )


class UpdateTime(BaseModel):
    """One parsed update time: a day, a set of hours, and a timezone."""
    model_config = ConfigDict(frozen=True)

    day: Optional[str] = None  # three-letter weekday, or None for every day
    hours: List[int] = Field(default_factory=list)
    timezone: Optional[str] = None

    @field_validator("hours")
    @classmethod
    def hours_in_range(cls, value: List[int]) -> List[int]:
        for hour in value:
            if hour < 0 or hour > 23:
                raise ValueError(f"Hour out of range: {hour}")
        return value


class UpdateTimeSpec(BaseModel):
    """Ordered update times, or the 'always' sentinel."""
    model_config = ConfigDict(frozen=True)

    entries: List[UpdateTime] = Field(default_factory=list)
    always: bool = False

    @classmethod
    def always_refresh(cls) -> "UpdateTimeSpec":
        return cls(always=True)
