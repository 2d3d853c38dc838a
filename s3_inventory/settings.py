from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import dataclass, field, fields, replace
import json
from pathlib import Path

from .models import MAX_KEYS_LIMIT

INT_FIELDS = ("page_size", "recent_window_ms", "recent_limit", "max_workers")


@dataclass
class InventorySettings:
    """Simple container for persistent inventory settings."""

    page_size: int = MAX_KEYS_LIMIT
    delimiter: str = "/"
    recent_window_ms: int = 60 * 60 * 1000
    recent_limit: int = 15
    snapshot_path: str = "r2_files_list.txt"
    excluded_suffixes: list[str] = field(default_factory=lambda: [".placeholder"])
    max_workers: int = 4


def _positive_int(value, default: int, *, upper: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    if upper is not None and number > upper:
        return upper
    return number


def _text(value, default: str) -> str:
    return value if isinstance(value, str) and value else default


def update_setting(settings: InventorySettings, name: str, value: str) -> InventorySettings:
    """Return a copy of ``settings`` with ``name`` parsed from its text form.

    ``excluded_suffixes`` takes a comma separated list; an empty value clears it.
    """

    if name not in {item.name for item in fields(InventorySettings)}:
        raise ValueError(f"Unknown setting '{name}'")
    if name in INT_FIELDS:
        try:
            parsed = int(value)
        except ValueError:
            raise ValueError(f"Setting '{name}' must be an integer") from None
        if parsed <= 0:
            raise ValueError(f"Setting '{name}' must be greater than zero")
        if name == "page_size" and parsed > MAX_KEYS_LIMIT:
            raise ValueError(f"Setting 'page_size' must be at most {MAX_KEYS_LIMIT}")
        return replace(settings, **{name: parsed})
    if name == "excluded_suffixes":
        return replace(settings, excluded_suffixes=[item.strip() for item in value.split(",") if item.strip()])
    if not value:
        raise ValueError(f"Setting '{name}' cannot be empty")
    return replace(settings, **{name: value})


class SettingsStorage:
    """JSON-backed persistence for :class:`InventorySettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3inv_settings.json"
        self._path = Path(storage_path)

    def load(self) -> InventorySettings:
        defaults = InventorySettings()
        if not self._path.exists():
            return defaults
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return defaults
        if not isinstance(data, dict):
            return defaults
        suffixes = data.get("excluded_suffixes", defaults.excluded_suffixes)
        if not isinstance(suffixes, list) or not all(isinstance(item, str) for item in suffixes):
            suffixes = defaults.excluded_suffixes
        return InventorySettings(
            page_size=_positive_int(data.get("page_size"), defaults.page_size, upper=MAX_KEYS_LIMIT),
            delimiter=_text(data.get("delimiter"), defaults.delimiter),
            recent_window_ms=_positive_int(data.get("recent_window_ms"), defaults.recent_window_ms),
            recent_limit=_positive_int(data.get("recent_limit"), defaults.recent_limit),
            snapshot_path=_text(data.get("snapshot_path"), defaults.snapshot_path),
            excluded_suffixes=list(suffixes),
            max_workers=_positive_int(data.get("max_workers"), defaults.max_workers),
        )

    def save(self, settings: InventorySettings) -> None:
        payload = {
            "page_size": min(max(int(settings.page_size), 1), MAX_KEYS_LIMIT),
            "delimiter": settings.delimiter or "/",
            "recent_window_ms": max(int(settings.recent_window_ms), 1),
            "recent_limit": max(int(settings.recent_limit), 1),
            "snapshot_path": settings.snapshot_path,
            "excluded_suffixes": list(settings.excluded_suffixes),
            "max_workers": max(int(settings.max_workers), 1),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
