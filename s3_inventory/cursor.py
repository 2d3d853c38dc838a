from __future__ import annotations
"""Exhaustive, lazy pagination over a prefix of an object store."""
import logging
from typing import Iterator, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .models import ListingRequest, Page

LOGGER = logging.getLogger(__name__)


class InventoryError(RuntimeError):
    """Base class for failures reported by the inventory core."""


class MalformedResponseError(ValueError):
    """Raised by a store client when a listing response cannot be interpreted."""


class StoreError(InventoryError):
    """A page fetch failed; the traversal it belonged to is incomplete."""

    def __init__(self, message: str, *, prefix: str, page_index: int):
        super().__init__(message)
        self.prefix = prefix
        self.page_index = page_index

    @property
    def pages_completed(self) -> int:
        return self.page_index


class StoreUnavailable(StoreError):
    """The store could not be reached before any page was returned."""


class StoreRequestFailed(StoreError):
    """A page fetch failed after at least one page had been returned."""


STORE_ERRORS = (ClientError, BotoCoreError, MalformedResponseError, OSError)


class StoreClient(Protocol):
    def list_page(
        self,
        *,
        prefix: str,
        delimiter: Optional[str],
        max_keys: int,
        continuation_token: Optional[str],
        number: int = 1,
    ) -> Page:
        ...


class ListingCursor:
    """Yields every page under ``request.prefix`` exactly once.

    The cursor is not restartable: once it is exhausted or a fetch fails,
    iterating again yields nothing. Open a new cursor to traverse again.
    """

    def __init__(self, store: StoreClient, request: ListingRequest):
        self._store = store
        self._request = request
        self._token: Optional[str] = None
        self._seen_tokens: set[str] = set()
        self._pages_completed = 0
        self._finished = False

    @property
    def request(self) -> ListingRequest:
        return self._request

    @property
    def pages_completed(self) -> int:
        return self._pages_completed

    @property
    def finished(self) -> bool:
        return self._finished

    def __iter__(self) -> Iterator[Page]:
        return self

    def __next__(self) -> Page:
        if self._finished:
            raise StopIteration
        page = self._fetch()
        self._pages_completed += 1
        if page.has_more:
            self._token = page.continuation_token
        else:
            self._finished = True
            LOGGER.debug(
                "Listing of '%s' complete after %d page(s)", self._request.prefix, self._pages_completed
            )
        return page

    def _fetch(self) -> Page:
        sent_token = self._token
        try:
            page = self._store.list_page(
                prefix=self._request.prefix,
                delimiter=self._request.delimiter,
                max_keys=self._request.max_keys_per_page,
                continuation_token=sent_token,
                number=self._pages_completed + 1,
            )
            if sent_token:
                self._seen_tokens.add(sent_token)
            if page.has_more and page.continuation_token in self._seen_tokens:
                raise MalformedResponseError(
                    f"store returned continuation token {page.continuation_token!r} a second time"
                )
        except STORE_ERRORS as exc:
            self._finished = True
            error_cls = StoreRequestFailed if self._pages_completed else StoreUnavailable
            raise error_cls(
                f"Listing '{self._request.prefix}' failed on page {self._pages_completed + 1}: {exc}",
                prefix=self._request.prefix,
                page_index=self._pages_completed,
            ) from exc
        LOGGER.debug(
            "Fetched page %d of '%s' (%d objects, %d prefixes)",
            page.number,
            self._request.prefix,
            len(page.descriptors),
            len(page.common_prefixes),
        )
        return page


def open_cursor(store: StoreClient, request: ListingRequest) -> ListingCursor:
    return ListingCursor(store, request)
