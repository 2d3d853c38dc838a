from __future__ import annotations
"""Data models representing object store listings and inventories."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

MAX_KEYS_LIMIT = 1000


@dataclass(frozen=True)
class ObjectDescriptor:
    """A single object as reported by the store."""

    key: str
    size: int
    last_modified: datetime


@dataclass(frozen=True)
class Page:
    """Represents a single page of a listing."""

    number: int
    descriptors: tuple[ObjectDescriptor, ...] = ()
    common_prefixes: frozenset[str] = frozenset()
    continuation_token: Optional[str] = None
    is_truncated: bool = False

    @property
    def has_more(self) -> bool:
        return self.is_truncated and bool(self.continuation_token)


@dataclass(frozen=True)
class ListingRequest:
    """Parameters of one traversal."""

    prefix: str = ""
    delimiter: Optional[str] = None
    max_keys_per_page: int = MAX_KEYS_LIMIT
    window_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0 < self.max_keys_per_page <= MAX_KEYS_LIMIT:
            raise ValueError(f"max_keys_per_page must be between 1 and {MAX_KEYS_LIMIT}")
        if self.window_ms is not None and self.window_ms <= 0:
            raise ValueError("window_ms must be greater than zero")
        if self.delimiter == "":
            object.__setattr__(self, "delimiter", None)


@dataclass(frozen=True)
class Partition:
    """Subdirectory names and leaf objects split out of listing results."""

    subdirectories: frozenset[str] = frozenset()
    files: tuple[ObjectDescriptor, ...] = ()


@dataclass(frozen=True)
class InventorySnapshot:
    """The leaf names captured from one complete traversal."""

    names: tuple[str, ...]
    source_prefix: str
    captured_at: datetime

    def __post_init__(self) -> None:
        for name in self.names:
            if "\n" in name or "\r" in name:
                raise ValueError(f"name {name!r} cannot be stored one per line")

    def content(self) -> bytes:
        if not self.names:
            return b""
        return ("\n".join(self.names) + "\n").encode("utf-8")


@dataclass(frozen=True)
class PrefixCount:
    """Object count for one subdirectory; ``error`` is set when it was skipped."""

    prefix: str
    count: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ReconciliationReport:
    """Differences between an inventory and another system of record."""

    missing: list[str] = field(default_factory=list)
    extra: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not (self.missing or self.extra or self.duplicates)
