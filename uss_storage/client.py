from __future__ import annotations
"""Thin REST client for the UpYun storage service."""
import base64
from datetime import datetime, timezone
from email.utils import formatdate
import hashlib
import hmac
import json
import logging
import queue
from typing import BinaryIO, Mapping, Optional
from urllib.parse import quote

import requests

from .models import DirRecord, FileRecord, Record

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://v0.api.upyun.com"

# ITER_END marks the last page of a listing.
# more detail at: http://docs.upyun.com/api/rest_api/#_13
ITER_END = "g2gCZAAEbmV4dGQAA2VvZg"

HEADER_LIST_ITER = "X-List-Iter"
HEADER_LIST_LIMIT = "X-List-Limit"
META_PREFIX = "x-upyun-meta-"

DEFAULT_LIST_LIMIT = 50
CHUNK_SIZE = 64 * 1024


class USSServiceError(Exception):
    """Raised when the REST API answers with a non-successful status."""

    def __init__(self, method: str, status_code: int, body: str = "", request_id: str | None = None):
        self.method = method
        self.status_code = status_code
        self.body = body
        self.request_id = request_id
        self.code = _parse_code(body)
        super().__init__(f"{method} {status_code} {body}".rstrip())


BACKEND_ERRORS = (USSServiceError, requests.RequestException)


def _parse_code(body: str) -> Optional[int]:
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return int(payload["code"])
    except (KeyError, TypeError, ValueError):
        return None


def _parse_timestamp(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _parse_size(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _parse_list_entry(base: str, entry: Mapping[str, object]) -> Record:
    name = str(entry.get("name") or "")
    modified = _parse_timestamp(entry.get("last_modified"))
    if entry.get("type") == "folder":
        return DirRecord(key=f"{base}{name}/", last_modified=modified)
    # For files the listing reports the MIME type in "type".
    return FileRecord(
        key=f"{base}{name}",
        size=_parse_size(entry.get("length")),
        last_modified=modified,
        content_type=str(entry.get("type") or ""),
    )


def _parse_info_headers(key: str, headers: Mapping[str, str]) -> Record:
    meta: dict[str, str] = {}
    fields: dict[str, str] = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered.startswith(META_PREFIX):
            meta[name[len(META_PREFIX):]] = value
        else:
            fields[lowered] = value

    modified = _parse_timestamp(fields.get("x-upyun-file-date"))
    if fields.get("x-upyun-file-type") == "folder":
        if key and not key.endswith("/"):
            key += "/"
        return DirRecord(key=key, last_modified=modified, meta=meta)
    return FileRecord(
        key=key,
        size=_parse_size(fields.get("x-upyun-file-size")),
        last_modified=modified,
        content_type=fields.get("content-type", ""),
        md5=fields.get("content-md5", ""),
        meta=meta,
    )


class USSClient:
    """Signs and sends requests against a single USS bucket."""

    def __init__(
        self,
        bucket: str,
        operator: str,
        password: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.bucket = bucket
        self._operator = operator
        self._password_md5 = hashlib.md5(password.encode("utf-8")).hexdigest()
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def list(
        self,
        path: str,
        objects: "queue.Queue[Record]",
        *,
        max_level: int = 1,
        headers: Mapping[str, str] | None = None,
    ) -> str:
        """Push one page of ``path`` into ``objects`` and return the next iter.

        Folders are descended while ``level + 1 < max_level`` (or always for
        ``max_level == -1``); every descended folder is listed completely.
        """

        return self._list_page(path, objects, max_level, 0, headers or {})

    def get_info(self, key: str) -> Record:
        response = self._request("HEAD", key)
        response.close()
        return _parse_info_headers(key, response.headers)

    def get(self, key: str, sink) -> int:
        response = self._request("GET", key, stream=True)
        written = 0
        with response:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    sink.write(chunk)
                    written += len(chunk)
        return written

    def put(self, key: str, source: BinaryIO, headers: Mapping[str, str] | None = None) -> None:
        self._request("PUT", key, headers=headers, data=source).close()

    def delete(self, key: str) -> None:
        self._request("DELETE", key).close()

    def _list_page(
        self,
        path: str,
        objects: "queue.Queue[Record]",
        max_level: int,
        level: int,
        headers: Mapping[str, str],
    ) -> str:
        request_headers = {
            "Accept": "application/json",
            "X-UpYun-Folder": "true",
            HEADER_LIST_LIMIT: str(DEFAULT_LIST_LIMIT),
        }
        request_headers.update({name: value for name, value in headers.items() if value})

        response = self._request("GET", path, headers=request_headers)
        payload = response.json() if response.content else {}
        base = path if not path or path.endswith("/") else f"{path}/"
        for entry in payload.get("files") or []:
            record = _parse_list_entry(base, entry)
            objects.put(record)
            if isinstance(record, DirRecord) and (level + 1 < max_level or max_level == -1):
                self._list_all(record.key, objects, max_level, level + 1)
        return payload.get("iter") or ITER_END

    def _list_all(self, path: str, objects: "queue.Queue[Record]", max_level: int, level: int) -> None:
        cursor = ""
        while True:
            cursor = self._list_page(path, objects, max_level, level, {HEADER_LIST_ITER: cursor})
            if cursor == ITER_END:
                return

    def _uri(self, key: str) -> str:
        return "/" + quote(f"{self.bucket}/{key}", safe="/")

    def _sign(self, method: str, uri: str, date: str) -> str:
        message = "&".join((method, uri, date)).encode("utf-8")
        digest = hmac.new(self._password_md5.encode("utf-8"), message, hashlib.sha1).digest()
        return f"UPYUN {self._operator}:{base64.b64encode(digest).decode('ascii')}"

    def _request(
        self,
        method: str,
        key: str,
        *,
        headers: Mapping[str, str] | None = None,
        data=None,
        stream: bool = False,
    ) -> requests.Response:
        uri = self._uri(key)
        date = formatdate(usegmt=True)
        request_headers = dict(headers or {})
        request_headers["Date"] = date
        request_headers["Authorization"] = self._sign(method, uri, date)

        LOGGER.debug("%s %s", method, uri)
        response = self._session.request(
            method,
            f"{self._endpoint}{uri}",
            headers=request_headers,
            data=data,
            stream=stream,
            timeout=self._timeout,
        )
        if not 200 <= response.status_code < 300:
            body = "" if method == "HEAD" else response.text
            response.close()
            raise USSServiceError(method, response.status_code, body, response.headers.get("X-Request-Id"))
        return response
