"""Line-oriented, self-describing record format for page cache files.

A cache file is a concatenation of records. Each record is a header line
followed by a payload and a terminating newline::

    <payload-length> pagecache
    Method: POST
    URL: https://www.notion.so/api/v3/loadPageChunk
    Body:+164
    {"chunkNumber": 0, ...}
    Response:+2310
    {
      "recordMap": ...
    }

Within the payload every field is either ``Key: value`` (short single-line
UTF-8 values) or ``Key:+<n>`` followed by exactly ``n`` raw bytes and a
newline. Length-prefixed values may hold newlines and arbitrary binary
content, so a reader only needs the lengths to find record boundaries.

Response bodies that parse as JSON are stored pretty-printed so that cache
files stay readable and diff well; everything else is stored verbatim.
"""

from __future__ import annotations

import json
from typing import Iterable

from pagecrawl.exceptions import CacheFormatError
from pagecrawl.models import CacheRecord

RECORD_TAG = "pagecache"
"""Type tag written in every record header."""

_MAX_INLINE = 120


def pretty_print_json(data: bytes) -> bytes:
    """Return *data* re-indented with two spaces if it is JSON, else unchanged.

    Responses nested too deeply to round-trip are also kept unchanged.
    """
    try:
        return json.dumps(json.loads(data), indent=2, ensure_ascii=False).encode("utf-8")
    except (ValueError, RecursionError):
        return data


def serialize_record(record: CacheRecord, pretty_response: bool = True) -> bytes:
    """Serialise one record, header and trailing newline included."""
    response = pretty_print_json(record.response) if pretty_response else record.response

    payload = bytearray()
    _write_field(payload, "Method", record.method.encode("utf-8"))
    _write_field(payload, "URL", record.url.encode("utf-8"))
    _write_field(payload, "Body", record.body)
    _write_field(payload, "Response", response)

    header = f"{len(payload)} {RECORD_TAG}\n".encode("ascii")
    return header + bytes(payload) + b"\n"


def serialize_records(records: Iterable[CacheRecord], pretty_response: bool = True) -> bytes:
    """Serialise *records* in order into the contents of one cache file."""
    return b"".join(serialize_record(r, pretty_response) for r in records)


def deserialize_records(data: bytes) -> list[CacheRecord]:
    """Parse the contents of a cache file.

    Args:
        data: Raw file contents.

    Returns:
        The records in file order. Empty input yields an empty list.

    Raises:
        CacheFormatError: If a header, field, or length prefix is malformed,
            a record has an unexpected tag, or a required field is missing.
    """
    records: list[CacheRecord] = []
    pos = 0
    n = len(data)
    while pos < n:
        nl = data.find(b"\n", pos)
        if nl == -1:
            raise CacheFormatError(f"unterminated record header at offset {pos}")
        size, tag = _parse_header(data[pos:nl], pos)
        if tag != RECORD_TAG:
            raise CacheFormatError(f"unexpected record type '{tag}', wanted '{RECORD_TAG}'")
        start = nl + 1
        end = start + size
        if data[end:end + 1] != b"\n":
            raise CacheFormatError(f"truncated record at offset {pos}")
        fields = _parse_fields(data[start:end])
        records.append(_record_from_fields(fields))
        pos = end + 1
    return records


# ------------------------------------------------------------------ #
# Private helpers
# ------------------------------------------------------------------ #


def _is_inline(value: bytes) -> bool:
    if len(value) >= _MAX_INLINE or b"\n" in value:
        return False
    try:
        value.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def _write_field(buf: bytearray, key: str, value: bytes) -> None:
    if _is_inline(value):
        buf += f"{key}: ".encode("ascii") + value + b"\n"
    else:
        buf += f"{key}:+{len(value)}\n".encode("ascii") + value + b"\n"


def _parse_header(line: bytes, offset: int) -> tuple[int, str]:
    parts = line.split(b" ", 1)
    if len(parts) != 2:
        raise CacheFormatError(f"malformed record header at offset {offset}")
    try:
        size = int(parts[0])
        tag = parts[1].decode("ascii")
    except ValueError as exc:
        raise CacheFormatError(f"malformed record header at offset {offset}: {exc}") from exc
    if size < 0:
        raise CacheFormatError(f"negative record size at offset {offset}")
    return size, tag


def _parse_fields(payload: bytes) -> dict[str, bytes]:
    fields: dict[str, bytes] = {}
    pos = 0
    n = len(payload)
    while pos < n:
        nl = payload.find(b"\n", pos)
        if nl == -1:
            raise CacheFormatError("unterminated field line")
        line = payload[pos:nl]
        pos = nl + 1

        colon = line.find(b":")
        if colon <= 0:
            raise CacheFormatError(f"malformed field line {line[:40]!r}")
        try:
            key = line[:colon].decode("ascii")
        except UnicodeDecodeError as exc:
            raise CacheFormatError(f"non-ascii field name {line[:colon]!r}") from exc
        rest = line[colon + 1:]

        if rest.startswith(b"+"):
            try:
                size = int(rest[1:])
            except ValueError as exc:
                raise CacheFormatError(f"bad length for field '{key}'") from exc
            end = pos + size
            if size < 0 or payload[end:end + 1] != b"\n":
                raise CacheFormatError(f"truncated value for field '{key}'")
            fields[key] = payload[pos:end]
            pos = end + 1
        elif rest.startswith(b" "):
            fields[key] = rest[1:]
        else:
            raise CacheFormatError(f"malformed field line {line[:40]!r}")
    return fields


def _record_from_fields(fields: dict[str, bytes]) -> CacheRecord:
    for key in ("Method", "URL", "Body", "Response"):
        if key not in fields:
            raise CacheFormatError(f"didn't find key '{key}'")
    try:
        method = fields["Method"].decode("utf-8")
        url = fields["URL"].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CacheFormatError(f"method or url is not valid utf-8: {exc}") from exc
    return CacheRecord(method=method, url=url, body=fields["Body"], response=fields["Response"])
