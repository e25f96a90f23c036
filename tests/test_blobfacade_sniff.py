import struct

import pytest

from components.blobfacade.errors import BlobValidation
from components.blobfacade.sniff import (
    SNIFF_LEN,
    detect_content_type,
    format_media_type,
    normalize_content_type,
    parse_media_type,
)


@pytest.mark.parametrize(
    "data,expected",
    [
        (b"", "application/octet-stream"),
        (b"<!DOCTYPE HTML><html></html>", "text/html; charset=utf-8"),
        (b" \n\t<html><body>hi</body></html>", "text/html; charset=utf-8"),
        (b"<p>para</p>", "text/html; charset=utf-8"),
        (b"<?xml version='1.0'?><a/>", "text/xml; charset=utf-8"),
        (b"%PDF-1.4\n", "application/pdf"),
        (b"%!PS-Adobe-3.0", "application/postscript"),
        (b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR", "image/png"),
        (b"\xff\xd8\xff\xe0\x00\x10JFIF", "image/jpeg"),
        (b"GIF89a\x01\x00", "image/gif"),
        (b"RIFF\x24\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"PK\x03\x04\x14\x00", "application/zip"),
        (b"\x1f\x8b\x08\x00\x00\x00", "application/x-gzip"),
        (b"\x00asm\x01\x00\x00\x00", "application/wasm"),
        (b"\xef\xbb\xbfhello", "text/plain; charset=utf-8"),
        (b"hello, world", "text/plain; charset=utf-8"),
        (b"\x00\x01\x02binary", "application/octet-stream"),
    ],
)
def test_detect_content_type(data, expected):
    assert detect_content_type(data) == expected


def test_detect_mp4_box():
    data = struct.pack(">I", 24) + b"ftypisom" + b"\x00\x00\x02\x00" + b"isommp41"
    assert detect_content_type(data) == "video/mp4"


def test_only_sniff_window_is_considered():
    data = b"a" * SNIFF_LEN + b"\x00\x01\x02"
    assert detect_content_type(data) == "text/plain; charset=utf-8"


def test_parse_media_type_lowercases_type_and_param_names():
    mt, params = parse_media_type("Text/HTML; Charset=UTF-8")
    assert mt == "text/html"
    assert params == {"charset": "UTF-8"}
    assert normalize_content_type("Text/HTML; Charset=UTF-8") == "text/html; charset=UTF-8"


def test_parse_media_type_quoted_values_round_trip():
    mt, params = parse_media_type('text/plain; name="a b"')
    assert (mt, params) == ("text/plain", {"name": "a b"})
    assert format_media_type(mt, params) == 'text/plain; name="a b"'


def test_parse_media_type_allows_trailing_semicolon():
    assert parse_media_type("application/json;") == ("application/json", {})


@pytest.mark.parametrize(
    "value",
    ["", "text", "text/", "/plain", "te xt/plain", "text/plain; =x", "text/plain; a=1; a=2", 'text/plain; a="open'],
)
def test_parse_media_type_rejects_malformed(value):
    with pytest.raises(BlobValidation):
        parse_media_type(value)
