
"""
Content-type sniffing and media-type parsing.

``detect_content_type`` follows the WHATWG MIME sniffing algorithm
(https://mimesniff.spec.whatwg.org/) over at most the first ``SNIFF_LEN``
bytes and always returns a valid MIME type.
"""

from __future__ import annotations

import struct
from typing import Callable, Dict, List, Optional, Tuple

from .errors import BlobValidation

SNIFF_LEN = 512
OCTET_STREAM = "application/octet-stream"

_WS = b"\t\n\x0c\r "
_TSPECIALS = set('()<>@,;:\\"/[]?=')


def _skip_ws(data: bytes) -> bytes:
    return data.lstrip(_WS)


def _html(tag: bytes) -> Callable[[bytes, bytes], Optional[str]]:
    def match(data: bytes, first_non_ws: bytes) -> Optional[str]:
        d = first_non_ws
        if len(d) < len(tag) + 1:
            return None
        for i, b in enumerate(tag):
            db = d[i]
            if ord("A") <= b <= ord("Z"):
                db &= 0xDF
            if b != db:
                return None
        if d[len(tag)] not in b" >":
            return None
        return "text/html; charset=utf-8"

    return match


def _masked(pattern: bytes, mask: bytes, ct: str, skip_ws: bool = False) -> Callable[[bytes, bytes], Optional[str]]:
    def match(data: bytes, first_non_ws: bytes) -> Optional[str]:
        d = first_non_ws if skip_ws else data
        if len(d) < len(pattern):
            return None
        for p, m, b in zip(pattern, mask, d):
            if b & m != p:
                return None
        return ct

    return match


def _exact(sig: bytes, ct: str) -> Callable[[bytes, bytes], Optional[str]]:
    def match(data: bytes, first_non_ws: bytes) -> Optional[str]:
        return ct if data.startswith(sig) else None

    return match


def _mp4(data: bytes, first_non_ws: bytes) -> Optional[str]:
    # https://mimesniff.spec.whatwg.org/#signature-for-mp4
    if len(data) < 12:
        return None
    (box_size,) = struct.unpack(">I", data[:4])
    if len(data) < box_size or box_size % 4 != 0:
        return None
    if data[4:8] != b"ftyp":
        return None
    for st in range(8, box_size, 4):
        if st == 12:
            # minor version number
            continue
        if data[st : st + 3] == b"mp4":
            return "video/mp4"
    return None


_BINARY = set(range(0x00, 0x09)) | {0x0B} | set(range(0x0E, 0x1B)) | set(range(0x1C, 0x20))


def _text(data: bytes, first_non_ws: bytes) -> Optional[str]:
    for b in first_non_ws:
        if b in _BINARY:
            return None
    return "text/plain; charset=utf-8"


_SIGNATURES: List[Callable[[bytes, bytes], Optional[str]]] = [
    *(_html(t) for t in (
        b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
        b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR", b"<P", b"<!--",
    )),
    _masked(b"<?xml", b"\xFF\xFF\xFF\xFF\xFF", "text/xml; charset=utf-8", skip_ws=True),
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),
    # byte order marks
    _masked(b"\xFE\xFF\x00\x00", b"\xFF\xFF\x00\x00", "text/plain; charset=utf-16be"),
    _masked(b"\xFF\xFE\x00\x00", b"\xFF\xFF\x00\x00", "text/plain; charset=utf-16le"),
    _masked(b"\xEF\xBB\xBF\x00", b"\xFF\xFF\xFF\x00", "text/plain; charset=utf-8"),
    # images
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(b"RIFF\x00\x00\x00\x00WEBPVP", b"\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF\xFF\xFF", "image/webp"),
    _exact(b"\x89PNG\x0D\x0A\x1A\x0A", "image/png"),
    _exact(b"\xFF\xD8\xFF", "image/jpeg"),
    # audio and video
    _masked(b"FORM\x00\x00\x00\x00AIFF", b"\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF", "audio/aiff"),
    _masked(b"ID3", b"\xFF\xFF\xFF", "audio/mpeg"),
    _masked(b"OggS\x00", b"\xFF\xFF\xFF\xFF\xFF", "application/ogg"),
    _masked(b"MThd\x00\x00\x00\x06", b"\xFF\xFF\xFF\xFF\xFF\xFF\xFF\xFF", "audio/midi"),
    _masked(b"RIFF\x00\x00\x00\x00AVI ", b"\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF", "video/avi"),
    _masked(b"RIFF\x00\x00\x00\x00WAVE", b"\xFF\xFF\xFF\xFF\x00\x00\x00\x00\xFF\xFF\xFF\xFF", "audio/wave"),
    _mp4,
    _exact(b"\x1A\x45\xDF\xA3", "video/webm"),
    # fonts
    _masked(
        b"\x00" * 34 + b"LP",
        b"\x00" * 34 + b"\xFF\xFF",
        "application/vnd.ms-fontobject",
    ),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"ttcf", "font/collection"),
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),
    # archives
    _exact(b"\x1F\x8B\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1A\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1A\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"\x00\x61\x73\x6D", "application/wasm"),
    _text,
]


def detect_content_type(data: bytes) -> str:
    if not data:
        return OCTET_STREAM
    data = bytes(data[:SNIFF_LEN])
    first_non_ws = _skip_ws(data)
    for sig in _SIGNATURES:
        ct = sig(data, first_non_ws)
        if ct:
            return ct
    return OCTET_STREAM


# ---------- media types (RFC 2045 / RFC 2616) ----------

def _is_token(s: str) -> bool:
    if not s:
        return False
    for ch in s:
        if ord(ch) <= 0x20 or ord(ch) >= 0x7F or ch in _TSPECIALS:
            return False
    return True


def _consume_token(v: str) -> Tuple[str, str]:
    i = 0
    while i < len(v) and _is_token(v[i]):
        i += 1
    return v[:i], v[i:]


def _consume_value(v: str) -> Tuple[Optional[str], str]:
    if not v:
        return None, v
    if v[0] != '"':
        token, rest = _consume_token(v)
        return (token or None), rest
    out = []
    i = 1
    while i < len(v):
        ch = v[i]
        if ch == '"':
            return "".join(out), v[i + 1:]
        if ch == "\\" and i + 1 < len(v):
            i += 1
            ch = v[i]
        elif ch in "\r\n":
            return None, v
        out.append(ch)
        i += 1
    return None, v


def parse_media_type(value: str) -> Tuple[str, Dict[str, str]]:
    """Split ``type/subtype; k=v`` into a lowercased media type and params.

    Raises BlobValidation on anything that is not a well-formed media type.
    """
    head, _, rest = value.partition(";")
    media_type = head.strip().lower()
    major, slash, minor = media_type.partition("/")
    if not slash or not _is_token(major) or not _is_token(minor):
        raise BlobValidation(f"invalid media type {value!r}")

    params: Dict[str, str] = {}
    v = rest
    while v:
        v = v.lstrip()
        if not v:
            break
        name, after = _consume_token(v)
        after = after.lstrip()
        if not name or not after.startswith("="):
            raise BlobValidation(f"invalid media parameter in {value!r}")
        param_value, after = _consume_value(after[1:].lstrip())
        if param_value is None:
            raise BlobValidation(f"invalid media parameter in {value!r}")
        name = name.lower()
        if name in params:
            raise BlobValidation(f"duplicate media parameter {name!r} in {value!r}")
        params[name] = param_value
        after = after.lstrip()
        if after and not after.startswith(";"):
            raise BlobValidation(f"invalid media parameter in {value!r}")
        v = after[1:]
    return media_type, params


def format_media_type(media_type: str, params: Optional[Dict[str, str]] = None) -> str:
    out = media_type.lower()
    for name in sorted(params or {}):
        val = params[name]
        if _is_token(val):
            out += f"; {name.lower()}={val}"
        else:
            escaped = val.replace("\\", "\\\\").replace('"', '\\"')
            out += f'; {name.lower()}="{escaped}"'
    return out


def normalize_content_type(value: str) -> str:
    media_type, params = parse_media_type(value)
    return format_media_type(media_type, params)
