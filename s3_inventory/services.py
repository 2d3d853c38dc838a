from __future__ import annotations
"""boto3-backed access to S3-compatible object stores."""
from datetime import datetime
from typing import Callable, Optional

import boto3
from botocore.client import Config

from .cursor import MalformedResponseError
from .models import ObjectDescriptor, Page
from .profiles import ConnectionProfile

CONNECT_TIMEOUT = 10
READ_TIMEOUT = 60


class S3StoreClient:
    """Lists one bucket page by page through ``list_objects_v2``."""

    def __init__(self, client, bucket_name: str):
        if not bucket_name:
            raise ValueError("bucket_name is required")
        self._client = client
        self._bucket_name = bucket_name

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def list_page(
        self,
        *,
        prefix: str,
        delimiter: Optional[str],
        max_keys: int,
        continuation_token: Optional[str],
        number: int = 1,
    ) -> Page:
        list_params = {"Bucket": self._bucket_name, "MaxKeys": max_keys}
        if prefix:
            list_params["Prefix"] = prefix
        if delimiter:
            list_params["Delimiter"] = delimiter
        if continuation_token:
            list_params["ContinuationToken"] = continuation_token

        response = self._client.list_objects_v2(**list_params)
        return parse_list_response(response, number=number)


def parse_list_response(response, *, number: int = 1) -> Page:
    if not isinstance(response, dict):
        raise MalformedResponseError(f"unexpected listing response type {type(response).__name__}")
    try:
        descriptors = tuple(
            ObjectDescriptor(
                key=obj["Key"],
                size=int(obj.get("Size") or 0),
                last_modified=_as_datetime(obj.get("LastModified")),
            )
            for obj in response.get("Contents") or []
        )
        prefixes = frozenset(common["Prefix"] for common in response.get("CommonPrefixes") or [])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedResponseError(f"malformed listing entry: {exc!r}") from exc
    return Page(
        number=number,
        descriptors=descriptors,
        common_prefixes=prefixes,
        continuation_token=response.get("NextContinuationToken") or None,
        is_truncated=bool(response.get("IsTruncated", False)),
    )


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise TypeError(f"LastModified must be a datetime, got {type(value).__name__}")


class S3InventoryService:
    """Creates store clients from connection profiles."""

    def __init__(self, client_factory: Callable[..., object] | None = None):
        self._client_factory = client_factory or boto3.client

    def list_buckets(self, profile: ConnectionProfile, *, client=None) -> list[str]:
        """Return the available bucket names.

        Raises:
            BotoCoreError | ClientError: when unable to connect or list buckets.
        """

        client = client or self._create_client(profile)
        buckets_response = client.list_buckets()
        return [bucket["Name"] for bucket in buckets_response.get("Buckets", [])]

    def create_store(self, profile: ConnectionProfile, bucket_name: str | None = None) -> S3StoreClient:
        return S3StoreClient(self._create_client(profile), bucket_name or profile.bucket)

    def _create_client(self, profile: ConnectionProfile):
        config = Config(
            signature_version="s3v4",
            connect_timeout=CONNECT_TIMEOUT,
            read_timeout=READ_TIMEOUT,
        )
        return self._client_factory(
            "s3",
            endpoint_url=profile.endpoint_url or None,
            aws_access_key_id=profile.access_key,
            aws_secret_access_key=profile.secret_key,
            region_name=profile.region or None,
            config=config,
        )
