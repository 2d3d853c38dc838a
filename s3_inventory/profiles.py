from __future__ import annotations
"""Connection profile models and persistence."""
from dataclasses import dataclass
import json
from pathlib import Path
from typing import Mapping

import keyring
from keyring.errors import KeyringError

ENV_ENDPOINT = "R2_ENDPOINT"
ENV_ACCESS_KEY = "R2_ACCESS_KEY_ID"
ENV_SECRET_KEY = "R2_SECRET_ACCESS_KEY"
ENV_BUCKET = "R2_BUCKET_NAME"
ENV_REGION = "R2_REGION"


@dataclass
class ConnectionProfile:
    """Represents a saved object store connection."""

    name: str
    endpoint_url: str
    access_key: str
    secret_key: str
    bucket: str = ""
    region: str = "auto"


def profile_from_environ(environ: Mapping[str, str], name: str = "environment") -> ConnectionProfile:
    """Build a profile from the ``R2_*`` environment variables."""

    values = {key: (environ.get(key) or "").strip() for key in (ENV_ENDPOINT, ENV_ACCESS_KEY, ENV_SECRET_KEY)}
    missing = [key for key, value in values.items() if not value]
    if missing:
        raise ValueError(f"Missing environment variables: {', '.join(missing)}")
    return ConnectionProfile(
        name=name,
        endpoint_url=values[ENV_ENDPOINT],
        access_key=values[ENV_ACCESS_KEY],
        secret_key=values[ENV_SECRET_KEY],
        bucket=(environ.get(ENV_BUCKET) or "").strip(),
        region=(environ.get(ENV_REGION) or "auto").strip(),
    )


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "pys3inv"):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError:
            return ""

    def set_secret(self, profile_name: str, secret_key: str) -> None:
        if not profile_name:
            return
        if not secret_key:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret_key)
        except KeyringError:
            return

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """JSON-backed store for connection profiles; secrets live in the keychain."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3inv_connections.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[ConnectionProfile]:
        data = self._read_data()
        profiles: list[ConnectionProfile] = []
        sanitized: list[dict[str, str]] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                secret_key = entry.get("secret_key", "")
                if secret_key:
                    saw_plaintext = True
                    self._keychain.set_secret(name, secret_key)
                else:
                    secret_key = self._keychain.get_secret(name)
                profile = ConnectionProfile(
                    name=name,
                    endpoint_url=entry["endpoint_url"],
                    access_key=entry["access_key"],
                    secret_key=secret_key,
                    bucket=entry.get("bucket", ""),
                    region=entry.get("region", "auto"),
                )
            except (KeyError, TypeError, AttributeError):
                continue
            profiles.append(profile)
            sanitized.append(_public_fields(profile))
        if saw_plaintext:
            self._write_data(sanitized)
        return profiles

    def save(self, profiles: list[ConnectionProfile]) -> None:
        data = []
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.secret_key)
            data.append(_public_fields(profile))
        existing_names = {entry.get("name") for entry in self._read_data() if isinstance(entry, dict)}
        current_names = {profile.name for profile in profiles}
        for name in existing_names - current_names:
            if isinstance(name, str) and name:
                self._keychain.delete_secret(name)
        self._write_data(data)

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _write_data(self, data: list[dict[str, str]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _public_fields(profile: ConnectionProfile) -> dict[str, str]:
    return {
        "name": profile.name,
        "endpoint_url": profile.endpoint_url,
        "access_key": profile.access_key,
        "bucket": profile.bucket,
        "region": profile.region,
    }
