"""Load-more accumulation over one list endpoint.

The fetcher keeps every page loaded so far for the current configuration
(descriptor plus page size). Changing the configuration starts a new
generation: the accumulated rows are dropped and any response still in flight
for an older generation is discarded when it arrives.

All state changes happen on the event loop thread; the only suspension point
is the network call, so ``load_more`` marks itself busy before awaiting and a
second trigger in the same tick is a no-op.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from app.client.pagination import DataValidator, ErrorCallback, total_pages_for, validate_rows
from app.core.config import settings

_LOG = logging.getLogger("app.client")

Rows = list[dict[str, Any]]


class LoadOrder(str, Enum):
    APPEND = "append"
    PREPEND = "prepend"


class FetchMode(str, Enum):
    IDLE = "idle"
    INITIAL_LOAD = "initial_load"
    LOAD_MORE = "load_more"


@dataclass
class AccumulatedPageState:
    all_data: Rows = field(default_factory=list)
    current_page_data: Rows = field(default_factory=list)
    skip: int = 0
    total_items: int = 0
    total_pages: int = 0
    is_loading_more: bool = False


def _without_window(descriptor: dict[str, Any] | None) -> dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in (descriptor or {}).items() if key not in {"skip", "take"}}


class AccumulatingFetcher:
    def __init__(
        self,
        client,
        entity: str,
        *,
        page_size: int | None = None,
        load_order: LoadOrder = LoadOrder.APPEND,
        on_error: ErrorCallback | None = None,
        validate_data: DataValidator | None = None,
    ):
        self.client = client
        self.entity = entity
        self.page_size = max(int(page_size or settings.CLIENT_DEFAULT_PAGE_SIZE), 1)
        self.load_order = LoadOrder(load_order)
        self.on_error = on_error
        self.validate_data = validate_data
        self.descriptor: dict[str, Any] = {}
        self.state = AccumulatedPageState()
        self.mode = FetchMode.IDLE
        self._generation = 0
        self._configured = False

    @property
    def current_page(self) -> int:
        return self.state.skip // self.page_size + 1

    @property
    def can_load_more(self) -> bool:
        if self.mode is not FetchMode.IDLE or self.state.total_pages <= 0:
            return False
        return self.current_page < self.state.total_pages

    @property
    def all_data(self) -> Rows:
        return self.state.all_data

    @property
    def current_page_data(self) -> Rows:
        return self.state.current_page_data

    async def configure(self, descriptor: dict[str, Any] | None, page_size: int | None = None) -> bool:
        """Point the fetcher at a descriptor and load page one if anything changed.

        Descriptors are compared structurally; ``skip``/``take`` in the
        descriptor are ignored because the fetcher owns the window. Returns
        whether the loaded page was applied.
        """
        next_descriptor = _without_window(descriptor)
        next_page_size = max(int(page_size or self.page_size), 1)
        if self._configured and next_descriptor == self.descriptor and next_page_size == self.page_size:
            return False
        self.descriptor = next_descriptor
        self.page_size = next_page_size
        self._configured = True
        return await self._restart()

    async def reset(self) -> bool:
        return await self._restart()

    async def load_more(self) -> bool:
        if not self.can_load_more:
            return False
        self.mode = FetchMode.LOAD_MORE
        self.state.is_loading_more = True
        return await self._load(self.state.skip + self.page_size, self._generation)

    def set_all_data(self, rows: Rows | Callable[[Rows], Rows]) -> None:
        self.state.all_data = list(rows(self.state.all_data) if callable(rows) else rows)

    async def _restart(self) -> bool:
        self._generation += 1
        self.state = AccumulatedPageState()
        self.mode = FetchMode.INITIAL_LOAD
        return await self._load(0, self._generation)

    async def _load(self, skip: int, generation: int) -> bool:
        request = {**self.descriptor, "skip": skip, "take": self.page_size}
        try:
            response = await self.client.list(self.entity, request)
            rows = list(response.get("data") or [])
            validate_rows(self.entity, rows, self.validate_data)
        except Exception as exc:
            if generation == self._generation:
                self.mode = FetchMode.IDLE
                self.state.is_loading_more = False
            _LOG.warning("accumulated fetch failed entity=%s skip=%s error=%s", self.entity, skip, exc)
            if self.on_error is not None:
                self.on_error(exc)
            raise

        if generation != self._generation:
            _LOG.debug("discarding stale page entity=%s skip=%s", self.entity, skip)
            return False

        state = self.state
        state.current_page_data = rows
        if skip == 0:
            state.all_data = list(rows)
        elif self.load_order is LoadOrder.PREPEND:
            state.all_data = rows + state.all_data
        else:
            state.all_data = state.all_data + rows
        state.skip = skip
        state.total_items = int(response.get("count") or 0)
        state.total_pages = total_pages_for(state.total_items, self.page_size)
        state.is_loading_more = False
        self.mode = FetchMode.IDLE
        return True
