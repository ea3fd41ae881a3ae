from __future__ import annotations

import copy
import logging
import math
from typing import Any, Callable

from app.core.config import settings

_LOG = logging.getLogger("app.client")

ErrorCallback = Callable[[Exception], None]
DataValidator = Callable[[list[dict[str, Any]]], bool]


class ListValidationError(ValueError):
    pass


def total_pages_for(count: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(count / page_size)


def validate_rows(entity: str, rows: list[dict[str, Any]], validate_data: DataValidator | None) -> None:
    if validate_data is not None and not validate_data(rows):
        raise ListValidationError(f"Validation failed for {entity} list response")


class PageWindow:
    """Page-by-page navigation over one list endpoint.

    The request window is ``{"skip", "take": page_size}`` merged under the
    descriptor, so a descriptor carrying its own ``skip``/``take`` pins a fixed
    slice. Navigation only moves ``skip``; ``fetch()`` issues the request.
    A response is applied only if it answers the latest fetch and the window
    has not moved since it was issued; otherwise ``fetch()`` returns ``None``.
    """

    def __init__(
        self,
        client,
        entity: str,
        descriptor: dict[str, Any] | None = None,
        *,
        page_size: int | None = None,
        initial_page: int = 1,
        on_error: ErrorCallback | None = None,
        validate_data: DataValidator | None = None,
    ):
        self.client = client
        self.entity = entity
        self.descriptor = copy.deepcopy(descriptor or {})
        self.page_size = max(int(page_size or settings.CLIENT_DEFAULT_PAGE_SIZE), 1)
        self.skip = (max(initial_page, 1) - 1) * self.page_size
        self.on_error = on_error
        self.validate_data = validate_data
        self.data: list[dict[str, Any]] = []
        self.total_items = 0
        self.total_pages = 0
        self.is_loading = False
        self.error: Exception | None = None
        self._latest_fetch = 0

    @property
    def current_page(self) -> int:
        return self.skip // self.page_size + 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.current_page > 1

    def request_descriptor(self) -> dict[str, Any]:
        return {"take": self.page_size, "skip": self.skip, **copy.deepcopy(self.descriptor)}

    def next_page(self) -> None:
        if self.has_next:
            self.skip += self.page_size

    def prev_page(self) -> None:
        if self.has_prev:
            self.skip = max(self.skip - self.page_size, 0)

    def go_to_page(self, page: int) -> None:
        if 1 <= page <= max(self.total_pages, 1):
            self.skip = (page - 1) * self.page_size

    def set_page_size(self, page_size: int) -> None:
        self.page_size = max(int(page_size), 1)
        self.skip = 0
        self.total_pages = total_pages_for(self.total_items, self.page_size)

    def set_descriptor(self, descriptor: dict[str, Any] | None) -> None:
        if descriptor != self.descriptor:
            self.descriptor = copy.deepcopy(descriptor or {})
            self.skip = 0

    def _is_current(self, fetch_id: int, request: dict[str, Any]) -> bool:
        return fetch_id == self._latest_fetch and request == self.request_descriptor()

    async def fetch(self) -> list[dict[str, Any]] | None:
        self._latest_fetch += 1
        fetch_id = self._latest_fetch
        request = self.request_descriptor()
        page_size = self.page_size
        self.is_loading = True
        try:
            response = await self.client.list(self.entity, request)
            rows = list(response.get("data") or [])
            validate_rows(self.entity, rows, self.validate_data)
        except Exception as exc:
            if fetch_id == self._latest_fetch:
                self.is_loading = False
                self.error = exc
            _LOG.warning("page fetch failed entity=%s skip=%s error=%s", self.entity, request.get("skip"), exc)
            if self.on_error is not None:
                self.on_error(exc)
            raise

        if fetch_id == self._latest_fetch:
            self.is_loading = False
        if not self._is_current(fetch_id, request) or page_size != self.page_size:
            _LOG.debug("discarding stale page entity=%s skip=%s", self.entity, request.get("skip"))
            return None
        self.error = None
        self.data = rows
        self.total_items = int(response.get("count") or 0)
        self.total_pages = total_pages_for(self.total_items, self.page_size)
        return self.data
