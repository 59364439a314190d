from __future__ import annotations
"""Pull-style pagination over page producers."""
import enum
from typing import Callable, Optional

from .models import ListingRequest, Object, ObjectPage


class IterationDone(Exception):
    """Raised by a page producer once the current page is the last one."""


NextPageFn = Callable[[ObjectPage], None]

# Separates a page cursor from the number of its objects already yielded.
OFFSET_SEPARATOR = "@"


def encode_token(cursor: str, offset: int) -> str:
    if offset <= 0:
        return cursor
    return f"{cursor}{OFFSET_SEPARATOR}{offset}"


def decode_token(token: str) -> tuple[str, int]:
    cursor, sep, offset = token.rpartition(OFFSET_SEPARATOR)
    if sep and offset.isdigit():
        return cursor, int(offset)
    return token, 0


class IteratorState(enum.Enum):
    READY = "ready"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"


class ObjectIterator:
    """Lazily yields objects, fetching a page whenever the buffer runs dry.

    ``next_fn`` fills the page it is given and either returns normally (more
    pages follow, the request cursor has been advanced) or raises
    :class:`IterationDone` after filling the final page. Any other exception
    propagates to the caller and leaves the cursor untouched, so iteration
    can be resumed by calling ``next`` again.

    The request cursor may be a token previously read from
    :attr:`continuation_token`; objects of its page that were already
    yielded are skipped.
    """

    def __init__(self, next_fn: NextPageFn, status: ListingRequest):
        self._next_fn = next_fn
        self._status = status
        status.cursor, self._skip = decode_token(status.cursor)
        self._state = IteratorState.READY
        self._buffer: list[Object] = []
        self._index = 0
        self._buffer_cursor = ""
        self._buffer_offset = 0

    @property
    def state(self) -> IteratorState:
        return self._state

    @property
    def continuation_token(self) -> Optional[str]:
        """Token resuming right after the last yielded object.

        ``None`` once every object has been yielded.
        """

        if self._index < len(self._buffer):
            return encode_token(self._buffer_cursor, self._buffer_offset + self._index)
        if self._state is IteratorState.EXHAUSTED:
            return None
        return encode_token(self._status.cursor, self._skip)

    def __iter__(self) -> "ObjectIterator":
        return self

    def __next__(self) -> Object:
        while self._index >= len(self._buffer):
            if self._state is IteratorState.EXHAUSTED:
                raise StopIteration
            cursor, offset = self._status.cursor, self._skip
            self._buffer = self.next_page()
            self._buffer_cursor, self._buffer_offset = cursor, offset
            self._index = 0
        item = self._buffer[self._index]
        self._index += 1
        return item

    def next_page(self) -> list[Object]:
        """Fetch and return the next page, or ``[]`` once exhausted."""

        # Objects still buffered by __next__ are given up.
        self._buffer, self._index = [], 0
        if self._state is IteratorState.EXHAUSTED:
            return []

        page = ObjectPage(status=self._status)
        self._state = IteratorState.FETCHING
        try:
            self._next_fn(page)
        except IterationDone:
            self._state = IteratorState.EXHAUSTED
        except BaseException:
            self._state = IteratorState.READY
            raise
        else:
            self._state = IteratorState.READY

        data = page.data[self._skip:]
        self._skip = 0
        return data
