"""Pagination helpers for list operations.

Tools expose one pagination contract (maxResults + opaque continuationToken)
regardless of what the upstream list endpoint offers:
- OffsetPaginator: the upstream returns the whole collection, we slice it.
- ContinuationPaginator: the upstream hands out its own cursor, we wrap it.

Tokens are URL-safe base64 of compact JSON, e.g. {"skip": 50, "top": 25} or
{"continuationToken": "<upstream>", "top": 25}.
"""
import base64
import binascii
import json
from typing import Any, Awaitable, Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .errors import validation_error

MAX_RESULTS = 100
DEFAULT_MAX_RESULTS = 25


class PaginationState(BaseModel):
    """Normalized pagination request."""

    max_results: int = Field(DEFAULT_MAX_RESULTS, ge=1, le=MAX_RESULTS)
    continuation_token: str = ""

    model_config = ConfigDict(frozen=True)


class Page(BaseModel):
    """One page of a list operation."""

    items: list[Any] = Field(default_factory=list)
    continuation_token: Optional[str] = None
    count: Optional[int] = None  # upstream total, when known

    @property
    def has_more(self) -> bool:
        return bool(self.continuation_token)


def normalize(max_results: Optional[int] = None, continuation_token: Optional[str] = None) -> PaginationState:
    """Clamp maxResults into [1, MAX_RESULTS]; 0 or absent means the default."""
    if not max_results:
        size = DEFAULT_MAX_RESULTS
    else:
        size = max(1, min(int(max_results), MAX_RESULTS))
    return PaginationState(max_results=size, continuation_token=continuation_token or "")


def encode_token(data: dict) -> str:
    """Encode pagination state into an opaque token."""
    raw = json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_token(token: str) -> dict:
    """Decode an opaque token; corrupt tokens raise a Validation-kind error."""
    if not token:
        return {}
    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeError, binascii.Error) as e:
        raise validation_error("Pagination", "decode_token", f"Invalid continuation token: {e}") from e

    if not isinstance(data, dict):
        raise validation_error("Pagination", "decode_token", "Invalid continuation token: not an object")
    return data


def _token_top(data: dict, fallback: int) -> int:
    top = data.get("top", fallback)
    if not isinstance(top, int) or isinstance(top, bool) or not 1 <= top <= MAX_RESULTS:
        raise validation_error("Pagination", "decode_token", f"Invalid continuation token: bad page size {top!r}")
    return top


def decode_offset(state: PaginationState) -> tuple[int, int]:
    """Return (offset, page_size) for an offset-based token.

    The page size recorded in a token wins over the caller's maxResults so a
    re-issued token always yields the same slice.
    """
    data = decode_token(state.continuation_token)
    if not data:
        return 0, state.max_results
    skip = data.get("skip")
    if not isinstance(skip, int) or isinstance(skip, bool) or skip < 0:
        raise validation_error("Pagination", "decode_token", f"Invalid continuation token: bad offset {skip!r}")
    return skip, _token_top(data, state.max_results)


def slice_by_offset(items: Sequence[Any], state: PaginationState) -> Page:
    """Cut one page out of a fully fetched collection."""
    offset, size = decode_offset(state)
    end = offset + size
    page_items = list(items[offset:end])
    next_token = encode_token({"skip": end, "top": size}) if end < len(items) else None
    return Page(items=page_items, continuation_token=next_token, count=len(items))


# ============================================================================
# Strategies
# ============================================================================


class OffsetPaginator:
    """Fetch the full collection, then slice it."""

    def __init__(self, fetch_all: Callable[[], Awaitable[list]]):
        self._fetch_all = fetch_all

    async def page(self, state: PaginationState) -> Page:
        # Decode first so a corrupt token fails before any network call
        decode_offset(state)
        items = await self._fetch_all()
        return slice_by_offset(items, state)


class ContinuationPaginator:
    """Wrap an upstream cursor (e.g. the x-ms-continuationtoken header).

    fetch_page(upstream_token, top) must return (items, next_upstream_token).

    An upstream page longer than the requested size is served in several
    pages: the token then keeps the cursor that produced it (null for the
    first upstream page) plus an offset into it.
    """

    def __init__(self, fetch_page: Callable[[Optional[str], int], Awaitable[tuple[list, Optional[str]]]]):
        self._fetch_page = fetch_page

    async def page(self, state: PaginationState) -> Page:
        data = decode_token(state.continuation_token)
        size = _token_top(data, state.max_results) if data else state.max_results
        upstream = data.get("continuationToken")
        if data and ("continuationToken" not in data or not (upstream is None or (isinstance(upstream, str) and upstream))):
            raise validation_error("Pagination", "decode_token", "Invalid continuation token: missing cursor")
        skip = data.get("skip", 0)
        if not isinstance(skip, int) or isinstance(skip, bool) or skip < 0:
            raise validation_error("Pagination", "decode_token", f"Invalid continuation token: bad offset {skip!r}")

        items, next_upstream = await self._fetch_page(upstream, size)
        items = list(items)
        end = skip + size
        if end < len(items):
            next_token = encode_token({"continuationToken": upstream, "skip": end, "top": size})
        elif next_upstream:
            next_token = encode_token({"continuationToken": next_upstream, "top": size})
        else:
            next_token = None
        return Page(items=items[skip:end], continuation_token=next_token)
