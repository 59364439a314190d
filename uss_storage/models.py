from __future__ import annotations
"""Data models representing USS objects and listings."""
from dataclasses import dataclass, field
from datetime import datetime
import enum
from typing import Optional, Union


class ObjectMode(enum.Flag):
    """Capabilities of an :class:`Object`."""

    NONE = 0
    READ = enum.auto()
    DIR = enum.auto()


class ListMode(enum.Enum):
    """How a listing walks the namespace."""

    DIR = "dir"
    PREFIX = "prefix"


@dataclass(frozen=True)
class Object:
    """A stored file or a virtual directory."""

    id: str
    path: str
    mode: ObjectMode = ObjectMode.NONE
    content_length: Optional[int] = None
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    user_metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if ObjectMode.DIR in self.mode and (
            self.content_length is not None or self.etag is not None or self.content_type is not None
        ):
            raise ValueError(f"directory object {self.id!r} cannot carry file attributes")

    @property
    def is_dir(self) -> bool:
        return ObjectMode.DIR in self.mode


@dataclass(frozen=True)
class FileRecord:
    """A file entry as reported by the backend."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    content_type: str = ""
    md5: str = ""
    meta: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DirRecord:
    """A folder entry as reported by the backend."""

    key: str
    last_modified: Optional[datetime] = None
    meta: dict[str, str] = field(default_factory=dict)


Record = Union[FileRecord, DirRecord]


@dataclass
class ListingRequest:
    """Cursor state shared by the pages of one listing."""

    prefix: str
    cursor: str = ""
    path: str = ""
    limit: int = 50
    max_level: int = 1


@dataclass
class ObjectPage:
    """Represents a single fetched page of objects."""

    status: ListingRequest
    data: list[Object] = field(default_factory=list)


@dataclass
class StorageMeta:
    """Static information about a storage handle."""

    name: str
    work_dir: str = "/"
