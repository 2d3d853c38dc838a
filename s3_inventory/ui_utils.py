from __future__ import annotations
"""Console formatting helpers and package metadata."""
from dataclasses import dataclass
from datetime import datetime
from importlib.metadata import PackageNotFoundError, metadata, version

from .models import ObjectDescriptor, Partition, PrefixCount, ReconciliationReport

DIST_NAME = "pys3inv"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    summary: str


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(
            name=DIST_NAME,
            version="",
            summary="Inventory and reconcile objects stored in S3-compatible buckets.",
        )
    return PackageInfo(
        name=distribution_metadata.get("Name") or dist_name,
        version=package_version,
        summary=distribution_metadata.get("Summary") or "",
    )


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"


def format_last_modified(last_modified: object) -> str:
    if not last_modified:
        return "-"
    if isinstance(last_modified, datetime):
        return last_modified.isoformat(timespec="seconds")
    return str(last_modified)


def format_descriptor(descriptor: ObjectDescriptor) -> str:
    return (
        f"[{format_last_modified(descriptor.last_modified)}] "
        f"{descriptor.key} ({format_size(descriptor.size)})"
    )


def format_partition(listing: Partition) -> list[str]:
    lines = [f"{name}/" for name in sorted(listing.subdirectories)]
    lines.extend(format_descriptor(descriptor) for descriptor in listing.files)
    if not lines:
        return ["(no objects found)"]
    return lines


def format_prefix_counts(counts: list[PrefixCount]) -> list[str]:
    lines = []
    for entry in counts:
        if entry.error is not None:
            lines.append(f"  {entry.prefix}: skipped ({entry.error})")
        else:
            lines.append(f"  {entry.prefix}: {entry.count} files")
    return lines


def format_report(report: ReconciliationReport) -> list[str]:
    lines = ["--- Missing from inventory ---"]
    lines.extend([f"  - {name}" for name in report.missing] or ["None"])
    lines.append("--- Extra in inventory ---")
    lines.extend([f"  + {name}" for name in report.extra] or ["None"])
    if report.duplicates:
        lines.append("--- Recorded more than once ---")
        lines.extend(f"  * {name}" for name in report.duplicates)
    return lines
