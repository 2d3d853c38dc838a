from __future__ import annotations
"""Controller layer coordinating inventory requests against one bucket."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
import logging
from pathlib import Path
from typing import Iterable, Optional

from .cursor import ListingCursor, StoreClient, StoreError, open_cursor
from .inventory import (
    FileSink,
    Sink,
    capture_snapshot,
    count_matching,
    exclude_suffixes,
    load_snapshot,
    merge_partitions,
    partition,
    reconcile,
    select_recent,
)
from .models import (
    InventorySnapshot,
    ListingRequest,
    ObjectDescriptor,
    Partition,
    PrefixCount,
    ReconciliationReport,
)
from .profiles import ConnectionProfile, ProfileStorage
from .services import S3InventoryService
from .settings import InventorySettings

LOGGER = logging.getLogger(__name__)


class NotConnectedError(RuntimeError):
    """Raised when an inventory operation is attempted before connecting."""


class InventoryController:
    """Runs listing, recency, snapshot and count requests with the configured store."""

    def __init__(
        self,
        service: S3InventoryService | None = None,
        settings: InventorySettings | None = None,
        storage: ProfileStorage | None = None,
    ):
        self._service = service or S3InventoryService()
        self._settings = settings or InventorySettings()
        self._storage = storage or ProfileStorage()
        self._profiles: list[ConnectionProfile] | None = None
        self._profile: ConnectionProfile | None = None
        self._store: StoreClient | None = None

    @property
    def is_connected(self) -> bool:
        return self._store is not None

    @property
    def settings(self) -> InventorySettings:
        return self._settings

    def list_profiles(self) -> list[ConnectionProfile]:
        return list(self._loaded_profiles())

    def get_profile(self, name: str) -> ConnectionProfile:
        for profile in self._loaded_profiles():
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' does not exist")

    def save_profile(self, profile: ConnectionProfile) -> None:
        profiles = self._loaded_profiles()
        for idx, existing in enumerate(profiles):
            if existing.name == profile.name:
                profiles[idx] = profile
                break
        else:
            profiles.append(profile)
        self._storage.save(profiles)

    def delete_profile(self, name: str) -> None:
        profiles = self._loaded_profiles()
        remaining = [p for p in profiles if p.name != name]
        if len(remaining) == len(profiles):
            raise ValueError(f"Profile '{name}' does not exist")
        self._profiles = remaining
        self._storage.save(remaining)

    def connect_with_profile(self, name: str, *, bucket_name: str | None = None) -> None:
        self.connect(self.get_profile(name), bucket_name=bucket_name)

    def connect(self, profile: ConnectionProfile, *, bucket_name: str | None = None) -> None:
        bucket = bucket_name or profile.bucket
        if not bucket:
            raise ValueError(f"Profile '{profile.name}' has no bucket; pass a bucket name")
        self._store = self._service.create_store(profile, bucket)
        self._profile = profile
        LOGGER.debug("Using bucket '%s' via profile '%s'", bucket, profile.name)

    def list_buckets(self) -> list[str]:
        if self._profile is None:
            raise NotConnectedError("Not connected to an object store")
        return self._service.list_buckets(self._profile)

    def open_cursor(self, prefix: str, *, delimiter: str | None = None, window_ms: int | None = None) -> ListingCursor:
        request = ListingRequest(
            prefix=prefix,
            delimiter=delimiter,
            max_keys_per_page=self._settings.page_size,
            window_ms=window_ms,
        )
        return open_cursor(self._require_store(), request)

    def list_level(self, prefix: str = "") -> Partition:
        """One-level listing: immediate subdirectories and files under ``prefix``."""

        delimiter = self._settings.delimiter
        cursor = self.open_cursor(prefix, delimiter=delimiter)
        return merge_partitions(partition(page, prefix, delimiter) for page in cursor)

    def recent(
        self,
        prefix: str,
        *,
        window_ms: int | None = None,
        limit: int | None = None,
        now: Optional[datetime] = None,
    ) -> tuple[ObjectDescriptor, ...]:
        window = window_ms or self._settings.recent_window_ms
        cursor = self.open_cursor(prefix, window_ms=window)
        files: list[ObjectDescriptor] = []
        for page in cursor:
            files.extend(partition(page, prefix, self._settings.delimiter).files)
        candidates = exclude_suffixes(files, self._settings.excluded_suffixes)
        selected = select_recent(candidates, window, now)
        if limit is not None:
            selected = selected[: max(limit, 0)]
        LOGGER.info("%d of %d object(s) under '%s' are recent", len(selected), len(files), prefix)
        return selected

    def snapshot(
        self,
        prefix: str,
        destination: str | Path | Sink | None = None,
        *,
        now: Optional[datetime] = None,
    ) -> InventorySnapshot:
        if destination is None:
            destination = self._settings.snapshot_path
        sink = FileSink(destination) if isinstance(destination, (str, Path)) else destination
        return capture_snapshot(self.open_cursor(prefix), sink, now=now)

    def count(self, prefix: str) -> int:
        return count_matching(self.open_cursor(prefix))

    def count_subdirectories(self, prefix: str = "", *, skip_failed: bool = False) -> list[PrefixCount]:
        """Count objects below each immediate subdirectory of ``prefix``.

        Each subdirectory is traversed on its own cursor. With ``skip_failed``
        a failing subdirectory is reported with its error instead of aborting.
        """

        delimiter = self._settings.delimiter
        children = [f"{prefix}{name}{delimiter}" for name in sorted(self.list_level(prefix).subdirectories)]
        if not children:
            return []
        with ThreadPoolExecutor(max_workers=min(self._settings.max_workers, len(children))) as executor:
            futures = [(child, executor.submit(self.count, child)) for child in children]
            results = []
            for child, future in futures:
                try:
                    results.append(PrefixCount(prefix=child, count=future.result()))
                except StoreError as exc:
                    if not skip_failed:
                        raise
                    LOGGER.warning("Skipping '%s': %s", child, exc)
                    results.append(PrefixCount(prefix=child, error=str(exc)))
        return results

    def reconcile_snapshot(self, snapshot_path: str | Path, recorded_names: Iterable[str]) -> ReconciliationReport:
        return reconcile(load_snapshot(snapshot_path), recorded_names)

    def _require_store(self) -> StoreClient:
        if self._store is None:
            raise NotConnectedError("Not connected to an object store")
        return self._store

    def _loaded_profiles(self) -> list[ConnectionProfile]:
        if self._profiles is None:
            self._profiles = self._storage.load()
        return self._profiles
