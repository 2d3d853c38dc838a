from __future__ import annotations
"""Partitioning, recency filtering, counting, snapshotting and reconciliation."""
from datetime import datetime, timedelta, timezone
import logging
import os
from pathlib import Path
import stat
import tempfile
from typing import Iterable, Optional, Protocol, Sequence

from .cursor import InventoryError, ListingCursor, StoreError
from .models import InventorySnapshot, ObjectDescriptor, Page, Partition, ReconciliationReport

LOGGER = logging.getLogger(__name__)

DEFAULT_DELIMITER = "/"


class PersistenceFailed(InventoryError):
    """Writing a complete snapshot failed; retry the write, not the listing."""

    def __init__(self, message: str, *, snapshot: InventorySnapshot):
        super().__init__(message)
        self.snapshot = snapshot


def basename(key: str, delimiter: str = DEFAULT_DELIMITER) -> str:
    return key.rsplit(delimiter, 1)[-1]


def partition(page: Page, prefix: str, delimiter: Optional[str] = DEFAULT_DELIMITER) -> Partition:
    """Split a page into subdirectory names and leaf objects.

    Directory markers (a key equal to ``prefix`` or ending in the delimiter)
    are not reported as files.
    """

    delimiter = delimiter or DEFAULT_DELIMITER
    subdirectories = set()
    for common in page.common_prefixes:
        name = common[len(prefix):] if common.startswith(prefix) else common
        if name.endswith(delimiter):
            name = name[: -len(delimiter)]
        if name:
            subdirectories.add(name)
    files = tuple(
        descriptor
        for descriptor in page.descriptors
        if descriptor.key != prefix and basename(descriptor.key, delimiter)
    )
    return Partition(subdirectories=frozenset(subdirectories), files=files)


def merge_partitions(partitions: Iterable[Partition]) -> Partition:
    subdirectories: set[str] = set()
    files: list[ObjectDescriptor] = []
    for part in partitions:
        subdirectories.update(part.subdirectories)
        files.extend(part.files)
    return Partition(subdirectories=frozenset(subdirectories), files=tuple(files))


def select_recent(
    descriptors: Iterable[ObjectDescriptor],
    window_ms: int,
    now: Optional[datetime] = None,
) -> tuple[ObjectDescriptor, ...]:
    """Return descriptors modified less than ``window_ms`` ago, newest first.

    Ties on ``last_modified`` are ordered by ascending key.
    """

    if window_ms <= 0:
        raise ValueError("window_ms must be greater than zero")
    now = now or datetime.now(timezone.utc)
    window = timedelta(milliseconds=window_ms)
    recent = [d for d in descriptors if now - d.last_modified < window]
    recent.sort(key=lambda d: d.key)
    recent.sort(key=lambda d: d.last_modified, reverse=True)
    return tuple(recent)


def exclude_suffixes(
    descriptors: Iterable[ObjectDescriptor], suffixes: Sequence[str]
) -> list[ObjectDescriptor]:
    if not suffixes:
        return list(descriptors)
    endings = tuple(suffixes)
    return [d for d in descriptors if not d.key.endswith(endings)]


def count_matching(cursor: ListingCursor) -> int:
    """Count leaf objects across every page without keeping them."""

    request = cursor.request
    total = 0
    for page in cursor:
        total += len(partition(page, request.prefix, request.delimiter).files)
    LOGGER.info("Counted %d object(s) under '%s'", total, request.prefix)
    return total


def build_snapshot(cursor: ListingCursor, *, now: Optional[datetime] = None) -> InventorySnapshot:
    """Collect leaf names from a complete traversal in page-received order.

    Raises:
        StoreUnavailable | StoreRequestFailed: the traversal did not complete;
            nothing collected so far is returned.
        ValueError: a name contains a line break and cannot be written one per line.
    """

    request = cursor.request
    delimiter = request.delimiter or DEFAULT_DELIMITER
    names: list[str] = []
    try:
        for page in cursor:
            names.extend(
                basename(descriptor.key, delimiter)
                for descriptor in partition(page, request.prefix, delimiter).files
            )
    except StoreError:
        LOGGER.debug("Discarding %d name(s) from incomplete listing of '%s'", len(names), request.prefix)
        names.clear()
        raise
    return InventorySnapshot(
        names=tuple(names),
        source_prefix=request.prefix,
        captured_at=now or datetime.now(timezone.utc),
    )


class Sink(Protocol):
    def write(self, data: bytes) -> None:
        ...


class FileSink:
    """Replaces the whole content of a local file."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, data: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            dir=self._path.parent, prefix=f".{self._path.name}.", delete=False
        )
        try:
            with handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(handle.name, self._target_mode())
            os.replace(handle.name, self._path)
        except OSError:
            Path(handle.name).unlink(missing_ok=True)
            raise

    def _target_mode(self) -> int:
        try:
            return stat.S_IMODE(self._path.stat().st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask


def write_snapshot(snapshot: InventorySnapshot, sink: Sink) -> None:
    try:
        sink.write(snapshot.content())
    except OSError as exc:
        raise PersistenceFailed(
            f"Could not write snapshot of '{snapshot.source_prefix}': {exc}", snapshot=snapshot
        ) from exc
    LOGGER.info("Wrote %d name(s) from '%s'", len(snapshot.names), snapshot.source_prefix)


def capture_snapshot(cursor: ListingCursor, sink: Sink, *, now: Optional[datetime] = None) -> InventorySnapshot:
    snapshot = build_snapshot(cursor, now=now)
    write_snapshot(snapshot, sink)
    return snapshot


def load_snapshot(path: str | Path) -> list[str]:
    text = Path(path).read_bytes().decode("utf-8")
    # Only "\n" separates names; "\r" is dropped from CRLF files.
    return [line.removesuffix("\r") for line in text.split("\n") if line not in ("", "\r")]


def reconcile(inventory_names: Iterable[str], recorded_names: Iterable[str]) -> ReconciliationReport:
    """Compare inventory names against names recorded elsewhere.

    ``missing`` are recorded but absent from the inventory, ``extra`` are in
    the inventory but not recorded, ``duplicates`` are recorded more than once.
    Both sides are compared with surrounding whitespace removed.
    """

    inventory = list(dict.fromkeys(_normalized(inventory_names)))
    seen: dict[str, int] = {}
    for name in _normalized(recorded_names):
        seen[name] = seen.get(name, 0) + 1
    inventory_set = set(inventory)
    return ReconciliationReport(
        missing=[name for name in seen if name not in inventory_set],
        extra=[name for name in inventory if name not in seen],
        duplicates=[name for name, count in seen.items() if count > 1],
    )


def _normalized(names: Iterable[str]) -> Iterable[str]:
    for name in names:
        name = (name or "").strip()
        if name:
            yield name
