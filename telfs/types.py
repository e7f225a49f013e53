"""Metadata records, journal operations and the errors the store raises."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Optional, Union

OP_CREATE_CHILD = "create"
OP_LINK = "link"
OP_UNLINK = "unlink"
OP_RENAME = "rename"
OP_SET_SIZE = "setsize"

_INT64_RANGE = (-(1 << 63), (1 << 63) - 1)
_UINT32_RANGE = (0, 0xFFFFFFFF)


class Kind(str, enum.Enum):
    """The inode kinds the filesystem supports."""

    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"

    def __str__(self) -> str:
        return self.value


class MetaError(Exception):
    """Base class for metadata store errors."""

    default_message = "meta: error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class NotFoundError(MetaError):
    """No row matches the request."""

    default_message = "meta: not found"


class ExistsError(MetaError):
    """A directory entry already exists at the target name."""

    default_message = "meta: name already exists"


class NotEmptyError(MetaError):
    """A directory that must be empty still has children."""

    default_message = "meta: directory not empty"


class IsDirError(MetaError):
    """The target is a directory where one is not allowed."""

    default_message = "meta: target is a directory"


class NotDirError(MetaError):
    """The target is not a directory where one is required."""

    default_message = "meta: target is not a directory"


class CycleError(MetaError):
    """A rename would move a directory into its own descendant."""

    default_message = "meta: rename would create a cycle"


@dataclass
class Inode:
    """A row of the inodes table. Times are unix seconds."""

    ino: int = 0
    kind: Kind = Kind.FILE
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    nlink: int = 0
    mtime: int = 0
    ctime: int = 0
    symlink_target: str = ""


@dataclass(frozen=True)
class Dirent:
    """A (parent, name) -> child link."""

    parent_ino: int
    name: str
    child_ino: int


@dataclass(frozen=True)
class DirentInfo:
    """A directory entry joined with the attributes of its inode."""

    name: str
    ino: int
    kind: Kind
    mode: int
    size: int


@dataclass(frozen=True)
class Chunk:
    """A file-chunk slot pointing at the channel message holding its payload."""

    ino: int
    idx: int
    tg_message_id: int
    size: int


@dataclass(frozen=True)
class SetAttrsPatch:
    """Attributes to change on an inode; None leaves a field untouched."""

    mode: Optional[int] = None
    uid: Optional[int] = None
    gid: Optional[int] = None
    size: Optional[int] = None
    mtime: Optional[int] = None


@dataclass(frozen=True)
class JournalEntry:
    """A row of the journal table; posted_at is None until posted."""

    seq: int
    op_json: bytes
    posted_at: Optional[int] = None


# JSON field name -> value type, in wire order.
_FIELDS = (
    ("op", "str"),
    ("parent", "int64"),
    ("name", "str"),
    ("new_parent", "int64"),
    ("new_name", "str"),
    ("ino", "int64"),
    ("target", "int64"),
    ("kind", "kind"),
    ("mode", "uint32"),
    ("uid", "uint32"),
    ("gid", "uint32"),
    ("size", "int64"),
    ("mtime", "int64"),
    ("symlink_target", "str"),
)


@dataclass(frozen=True)
class JournalOp:
    """One metadata mutation as recorded in the journal and posted to the channel."""

    op: str
    parent: int = 0
    name: str = ""
    new_parent: int = 0
    new_name: str = ""
    ino: int = 0
    target: int = 0
    kind: Optional[Kind] = None
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    mtime: int = 0
    symlink_target: str = ""

    def to_json(self) -> bytes:
        """Encode compactly, leaving out every empty field except op."""
        payload: dict = {"op": self.op}
        for name, kind in _FIELDS[1:]:
            value = getattr(self, name)
            if not value:
                continue
            payload[name] = Kind(value).value if kind == "kind" else value
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        for char, escape in (
            ("<", "\\u003c"),
            (">", "\\u003e"),
            ("&", "\\u0026"),
            ("\u2028", "\\u2028"),
            ("\u2029", "\\u2029"),
        ):
            text = text.replace(char, escape)
        return text.encode("utf-8")


def _convert(name: str, kind: str, value: object) -> object:
    if kind == "str":
        if not isinstance(value, str):
            raise MetaError(f"decode journal op: field {name!r} must be a string")
        return value
    if kind == "kind":
        if not isinstance(value, str):
            raise MetaError(f"decode journal op: field {name!r} must be a string")
        if value == "":
            return None
        try:
            return Kind(value)
        except ValueError:
            raise MetaError(f"decode journal op: unknown inode kind {value!r}") from None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MetaError(f"decode journal op: field {name!r} must be an integer")
    low, high = _UINT32_RANGE if kind == "uint32" else _INT64_RANGE
    if not low <= value <= high:
        raise MetaError(f"decode journal op: field {name!r} out of range: {value}")
    return value


def decode_op(payload: Union[bytes, str]) -> JournalOp:
    """Parse a journal op JSON payload. Unknown fields are ignored."""
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as exc:
        raise MetaError(f"decode journal op: {exc}") from exc
    if not isinstance(data, dict):
        raise MetaError("decode journal op: payload is not a JSON object")
    values = {}
    for name, kind in _FIELDS:
        value = data.get(name)
        if value is None:
            continue
        values[name] = _convert(name, kind, value)
    values.setdefault("op", "")
    return JournalOp(**values)