"""The encrypted snapshot envelope: magic, version, public KDF header and sealed body."""

from __future__ import annotations

import base64
import binascii
import json
import struct
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

MODE_AES_GCM_V1 = "aes-gcm-v1"
MODE_AES_GCM_V2 = "aes-gcm-v2"

MAGIC = b"TFSE"
VERSION = 1

_PREFIX_LEN = len(MAGIC) + 1 + 2
_MAX_HEADER_LEN = 0xFFFF

# The body is sealed under the slot reserved for per-filesystem data.
_BODY_INO = 0
_BODY_IDX = -1

_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class Cipher(Protocol):
    """Anything that can seal a plaintext under an (ino, idx) slot."""

    def seal(self, ino: int, idx: int, plaintext: bytes) -> bytes:
        ...


class EnvelopeError(ValueError):
    """An envelope could not be built or parsed."""


@dataclass(frozen=True)
class WrapOpts:
    """Public crypto state carried in an envelope.

    wrapped_dek is needed for the v2 mode and left out for v1.
    """

    mode: str = ""
    salt: Optional[bytes] = None
    argon: Optional[bytes] = None
    canary: Optional[bytes] = None
    wrapped_dek: Optional[bytes] = None


@dataclass(frozen=True)
class EnvelopeHeader:
    """The parsed header of an envelope."""

    mode: str = ""
    salt: bytes = b""
    argon: bytes = b""
    canary: bytes = b""
    wrapped_dek: bytes = b""


def _dump(value: object) -> str:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    for char, escape in _HTML_ESCAPES:
        text = text.replace(char, escape)
    return text


def _b64(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    return base64.b64encode(bytes(value)).decode("ascii")


def _encode_header(opts: WrapOpts) -> bytes:
    if opts.argon:
        try:
            argon = _dump(json.loads(bytes(opts.argon)))
        except (ValueError, UnicodeDecodeError) as exc:
            raise EnvelopeError(f"encode envelope header: argon is not JSON: {exc}") from exc
    else:
        argon = "null"
    parts = [
        '"mode":' + _dump(opts.mode or MODE_AES_GCM_V1),
        '"salt":' + _dump(_b64(opts.salt)),
        '"argon":' + argon,
        '"canary":' + _dump(_b64(opts.canary)),
    ]
    if opts.wrapped_dek:
        parts.append('"wrapped_dek":' + _dump(_b64(opts.wrapped_dek)))
    return ("{" + ",".join(parts) + "}").encode("utf-8")


def wrap(cipher: Cipher, opts: WrapOpts, plaintext: bytes) -> bytes:
    """Seal plaintext and prefix it with the header needed to recover the key.

    Layout: "TFSE" | version (1 byte) | header length (2 bytes, big endian)
    | header JSON | sealed body.
    """
    header = _encode_header(opts)
    if len(header) > _MAX_HEADER_LEN:
        raise EnvelopeError(
            f"envelope header too large ({len(header)} > {_MAX_HEADER_LEN})"
        )
    try:
        body = cipher.seal(_BODY_INO, _BODY_IDX, bytes(plaintext))
    except Exception as exc:
        raise EnvelopeError(f"seal snapshot body: {exc}") from exc
    return MAGIC + struct.pack(">BH", VERSION, len(header)) + header + bytes(body)


def is_wrapped(data: bytes) -> bool:
    """Whether data starts like an encrypted snapshot envelope."""
    return len(data) >= len(MAGIC) and bytes(data[: len(MAGIC)]) == MAGIC


def _field_bytes(fields: dict, name: str) -> bytes:
    value = fields.get(name)
    if value is None:
        return b""
    if not isinstance(value, str):
        raise EnvelopeError(f"snapshot: bad header: {name} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeError(f"snapshot: bad header: {name}: {exc}") from exc


def _decode_header(raw: bytes) -> EnvelopeHeader:
    try:
        fields = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise EnvelopeError(f"snapshot: bad header: {exc}") from exc
    if fields is None:
        return EnvelopeHeader()
    if not isinstance(fields, dict):
        raise EnvelopeError("snapshot: bad header: not a JSON object")
    mode = fields.get("mode")
    if mode is None:
        mode = ""
    elif not isinstance(mode, str):
        raise EnvelopeError("snapshot: bad header: mode must be a string")
    argon = fields.get("argon")
    return EnvelopeHeader(
        mode=mode,
        salt=_field_bytes(fields, "salt"),
        argon=b"" if argon is None else _dump(argon).encode("utf-8"),
        canary=_field_bytes(fields, "canary"),
        wrapped_dek=_field_bytes(fields, "wrapped_dek"),
    )


def unwrap(data: bytes) -> Tuple[EnvelopeHeader, bytes]:
    """Split an envelope into its parsed header and the still-sealed body."""
    data = bytes(data)
    if not is_wrapped(data):
        raise EnvelopeError("snapshot: not a wrapped envelope")
    if len(data) < _PREFIX_LEN:
        raise EnvelopeError("snapshot: envelope too short")
    version, header_len = struct.unpack(">BH", data[len(MAGIC):_PREFIX_LEN])
    if version != VERSION:
        raise EnvelopeError(f"snapshot: unsupported envelope version {version}")
    end = _PREFIX_LEN + header_len
    if end > len(data):
        raise EnvelopeError("snapshot: envelope truncated")
    header = _decode_header(data[_PREFIX_LEN:end])
    return header, data[end:]


def envelope_mode(data: bytes) -> str:
    """The cipher mode declared by an envelope, or "" if data is not one."""
    if not is_wrapped(data):
        return ""
    try:
        header, _ = unwrap(data)
    except EnvelopeError:
        return ""
    return header.mode


def envelope_kdf_params(data: bytes) -> Tuple[bytes, bytes, bytes]:
    """The (salt, argon JSON, canary) stored in an envelope."""
    header, _ = unwrap(data)
    return header.salt, header.argon, header.canary


def unwrap_body(data: bytes) -> bytes:
    """Just the sealed body of an envelope."""
    _, body = unwrap(data)
    return body


def unwrap_header_and_body(data: bytes) -> Tuple[EnvelopeHeader, bytes]:
    """The parsed header together with the sealed body."""
    return unwrap(data)