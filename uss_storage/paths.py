from __future__ import annotations
"""Mapping between logical paths and backend keys."""


def normalize_work_dir(work_dir: str | None) -> str:
    """Return ``work_dir`` with exactly one leading and one trailing slash."""

    stripped = (work_dir or "").strip("/")
    if not stripped:
        return "/"
    return f"/{stripped}/"


class PathMapper:
    """Translates paths relative to a working directory into bucket keys."""

    def __init__(self, work_dir: str | None = "/"):
        self._work_dir = normalize_work_dir(work_dir)
        self._prefix = self._work_dir.lstrip("/")

    @property
    def work_dir(self) -> str:
        return self._work_dir

    @property
    def prefix(self) -> str:
        return self._prefix

    def to_backend_key(self, path: str) -> str:
        return self._prefix + path

    def to_logical_path(self, key: str) -> str:
        # Only a leading occurrence of the root belongs to the work dir.
        if self._prefix and key.startswith(self._prefix):
            return key[len(self._prefix):]
        return key
