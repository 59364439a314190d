from __future__ import annotations
"""Storage handle exposing a USS bucket through the shared operations."""
from dataclasses import dataclass
import logging
import queue
import threading
from typing import BinaryIO, Callable, Optional

from .client import (
    BACKEND_ERRORS,
    DEFAULT_ENDPOINT,
    HEADER_LIST_ITER,
    HEADER_LIST_LIMIT,
    ITER_END,
    USSClient,
)
from .errors import InitError, PairUnsupportedError, StorageError, format_error
from .iterator import IterationDone, ObjectIterator
from .models import (
    DirRecord,
    FileRecord,
    ListingRequest,
    ListMode,
    Object,
    ObjectMode,
    ObjectPage,
    StorageMeta,
)
from .paths import PathMapper
from .profiles import PROTOCOL_HMAC, ConnectionProfile, parse_credential
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)

# 50 is the value recommended by the USS SDK.
LIST_LIMIT = 50


class TransferCancelledError(RuntimeError):
    """Raised when a read or write is cancelled by the caller."""


@dataclass
class _ListDone:
    """Last item put on a listing queue; carries the worker's outcome."""

    next_iter: str = ""
    error: Optional[BaseException] = None


class _SizedReader:
    """File-like view over the first ``size`` bytes of ``source``."""

    def __init__(self, source: BinaryIO, size: int, callback: Callable[[int], None] | None = None):
        self._source = source
        self._size = size
        self._remaining = size
        self._callback = callback

    def __len__(self) -> int:
        return self._size

    def read(self, amount: int | None = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if amount is None or amount < 0 or amount > self._remaining:
            amount = self._remaining
        chunk = self._source.read(amount)
        self._remaining -= len(chunk)
        if chunk and self._callback:
            self._callback(len(chunk))
        return chunk


class _CallbackWriter:
    def __init__(self, sink, callback: Callable[[int], None]):
        self._sink = sink
        self._callback = callback

    def write(self, data: bytes):
        written = self._sink.write(data)
        self._callback(len(data))
        return written


class USSStorage:
    """Encapsulates USS access behind list/read/write/stat/delete."""

    def __init__(
        self,
        *,
        name: str,
        operator: str,
        password: str,
        work_dir: str | None = "/",
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float | None = None,
        list_limit: int = LIST_LIMIT,
        client_factory: Callable[..., object] | None = None,
    ):
        self._client_factory = client_factory or USSClient
        self._name = name
        self._paths = PathMapper(work_dir)
        self._list_limit = list_limit
        self._client = self._client_factory(
            name,
            operator,
            password,
            endpoint=endpoint,
            timeout=timeout,
        )

    @classmethod
    def from_profile(
        cls,
        profile: ConnectionProfile,
        settings: AppSettings | None = None,
        *,
        client_factory: Callable[..., object] | None = None,
    ) -> "USSStorage":
        settings = settings or AppSettings()
        return cls(
            name=profile.bucket,
            operator=profile.operator,
            password=profile.password,
            work_dir=profile.work_dir,
            endpoint=settings.endpoint,
            timeout=settings.timeout,
            list_limit=settings.list_limit,
            client_factory=client_factory,
        )

    def __str__(self) -> str:
        return f"Storager uss {{Name: {self._name}, WorkDir: {self._paths.work_dir}}}"

    def metadata(self) -> StorageMeta:
        return StorageMeta(name=self._name, work_dir=self._paths.work_dir)

    def list(
        self,
        path: str = "",
        *,
        mode: ListMode | str = ListMode.DIR,
        continuation_token: str | None = None,
    ) -> ObjectIterator:
        """Return a lazy iterator over the objects below ``path``.

        ``ListMode.DIR`` yields the direct children of ``path`` including
        folders; ``ListMode.PREFIX`` yields every file below ``path``. Pass an
        iterator's ``continuation_token`` to resume an earlier listing.
        """

        mode = ListMode(mode)
        if mode is ListMode.DIR:
            next_fn, max_level = self._next_page_by_dir, 1
        else:
            next_fn, max_level = self._next_page_by_prefix, -1

        status = ListingRequest(
            prefix=self._paths.to_backend_key(path),
            cursor=continuation_token or "",
            path=path,
            limit=self._list_limit,
            max_level=max_level,
        )
        return ObjectIterator(next_fn, status)

    def stat(self, path: str) -> Object:
        key = self._paths.to_backend_key(path)
        try:
            record = self._client.get_info(key)
        except BACKEND_ERRORS as exc:
            raise self._format_error("stat", exc, path) from exc

        if isinstance(record, DirRecord):
            return self._format_dir_object(record)
        return self._format_file_object(record)

    def read(
        self,
        path: str,
        sink,
        *,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> int:
        """Stream the object at ``path`` into ``sink``; return the bytes read."""

        key = self._paths.to_backend_key(path)
        callback = self._build_transfer_callback(progress_callback, cancel_requested)
        if callback:
            sink = _CallbackWriter(sink, callback)
        try:
            return self._client.get(key, sink)
        except BACKEND_ERRORS as exc:
            raise self._format_error("read", exc, path) from exc

    def write(
        self,
        path: str,
        source: BinaryIO,
        size: int,
        *,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> int:
        """Upload ``size`` bytes from ``source`` to ``path``.

        USS needs the content length before the body, so ``size`` is sent as
        ``Content-Length`` and at most ``size`` bytes are read from ``source``.
        """

        key = self._paths.to_backend_key(path)
        callback = self._build_transfer_callback(progress_callback, cancel_requested)
        body = _SizedReader(source, size, callback)
        try:
            self._client.put(key, body, headers={"Content-Length": str(size)})
        except BACKEND_ERRORS as exc:
            raise self._format_error("write", exc, path) from exc
        return size

    def delete(self, path: str) -> None:
        """Delete the object at ``path``.

        USS rejects a DELETE that follows a PUT on the same key too closely:
        ``DELETE 429 {"msg":"concurrent put or delete","code":42900007}``.
        That rejection is raised as an unexpected error and not retried.
        """

        key = self._paths.to_backend_key(path)
        try:
            self._client.delete(key)
        except BACKEND_ERRORS as exc:
            raise self._format_error("delete", exc, path) from exc

    def _next_page_by_dir(self, page: ObjectPage) -> None:
        self._fetch_page(page, keep_dirs=True)

    def _next_page_by_prefix(self, page: ObjectPage) -> None:
        self._fetch_page(page, keep_dirs=False)

    def _fetch_page(self, page: ObjectPage, *, keep_dirs: bool) -> None:
        status = page.status
        headers = {HEADER_LIST_LIMIT: str(status.limit), HEADER_LIST_ITER: status.cursor}

        records: queue.Queue = queue.Queue(maxsize=1)
        worker = threading.Thread(
            target=self._list_worker,
            args=(status, records, headers),
            name="uss-list-worker",
            daemon=True,
        )
        worker.start()

        # Drain everything, even after a failure, so partial results survive.
        done = None
        try:
            while done is None:
                record = records.get()
                if isinstance(record, _ListDone):
                    done = record
                elif isinstance(record, DirRecord):
                    if keep_dirs:
                        page.data.append(self._format_dir_object(record))
                else:
                    page.data.append(self._format_file_object(record))
        finally:
            # The worker only exits once its completion marker is taken.
            while done is None:
                record = records.get()
                if isinstance(record, _ListDone):
                    done = record
            worker.join()

        if done.error is not None:
            raise self._format_error(
                "list", done.error, status.path, objects=page.data
            ) from done.error

        LOGGER.debug("Listed %d object(s) under '%s'", len(page.data), status.prefix)
        if done.next_iter == ITER_END:
            raise IterationDone()
        status.cursor = done.next_iter

    def _list_worker(self, status: ListingRequest, records: queue.Queue, headers: dict[str, str]) -> None:
        done = _ListDone()
        try:
            done.next_iter = self._client.list(
                status.prefix,
                records,
                max_level=status.max_level,
                headers=headers,
            )
        except Exception as exc:  # handed over to the draining thread
            done.error = exc
        finally:
            records.put(done)

    def _format_file_object(self, record: FileRecord) -> Object:
        return Object(
            id=record.key,
            path=self._paths.to_logical_path(record.key),
            mode=ObjectMode.READ,
            content_length=record.size,
            last_modified=record.last_modified,
            etag=record.md5 or None,
            content_type=record.content_type or None,
            user_metadata=dict(record.meta),
        )

    def _format_dir_object(self, record: DirRecord) -> Object:
        # record.meta holds the x-upyun-meta-* headers, i.e. user metadata.
        return Object(
            id=record.key,
            path=self._paths.to_logical_path(record.key),
            mode=ObjectMode.DIR,
            last_modified=record.last_modified,
            user_metadata=dict(record.meta),
        )

    def _format_error(self, operation: str, err: BaseException, *path: str, objects=()) -> StorageError:
        return StorageError(operation, format_error(err), self, path, objects)

    def _build_transfer_callback(
        self,
        progress_callback: Optional[Callable[[int], None]],
        cancel_requested: Optional[Callable[[], bool]],
    ):
        if not progress_callback and not cancel_requested:
            return None

        transferred = 0

        def _callback(bytes_amount: int) -> None:
            nonlocal transferred
            if cancel_requested and cancel_requested():
                raise TransferCancelledError("Transfer cancelled by user")
            transferred += bytes_amount
            if progress_callback:
                progress_callback(transferred)
            if cancel_requested and cancel_requested():
                raise TransferCancelledError("Transfer cancelled by user")

        return _callback


def new_storage(
    *,
    credential: str,
    name: str,
    work_dir: str | None = None,
    endpoint: str | None = None,
    timeout: float | None = None,
    list_limit: int = LIST_LIMIT,
    client_factory: Callable[..., object] | None = None,
) -> USSStorage:
    """Build a :class:`USSStorage` from keyword options.

    Raises:
        InitError: when the credential is malformed or not an hmac credential.
    """

    try:
        protocol, values = parse_credential(credential)
        if protocol != PROTOCOL_HMAC:
            raise PairUnsupportedError("credential", protocol)
    except (ValueError, PairUnsupportedError) as exc:
        raise InitError("new_storager", exc, name=name, work_dir=work_dir) from exc

    operator, password = values
    return USSStorage(
        name=name,
        operator=operator,
        password=password,
        work_dir=work_dir or "/",
        endpoint=endpoint or DEFAULT_ENDPOINT,
        timeout=timeout,
        list_limit=list_limit,
        client_factory=client_factory,
    )
