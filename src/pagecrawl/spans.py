"""Parsing of rich-text spans stored in block properties.

Block text is stored as a list of spans, each a one- or two-element list::

    [["Hello "], ["world", [["b"], ["a", "https://example.com"]]]]

The optional second element lists the span's attributes. Each attribute is a
list whose first element is a one-letter kind and whose remaining elements
are kind-specific: a link carries a URL, a user mention a user id, a date a
mapping describing the date. :func:`parse_text_spans` turns this into
:class:`TextSpan` objects whose ``attrs`` are one Pydantic model per kind,
each carrying only its own fields.

Input that does not have this shape raises
:class:`~pagecrawl.exceptions.SpanParseError`.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from pagecrawl.exceptions import SpanParseError

SPECIAL_TEXT = "‣"
"""Placeholder text used for spans that render a mention (user, date)."""


class Bold(BaseModel):
    kind: Literal["b"] = "b"


class Code(BaseModel):
    kind: Literal["c"] = "c"


class Italic(BaseModel):
    kind: Literal["i"] = "i"


class Strikethrough(BaseModel):
    kind: Literal["s"] = "s"


class Comment(BaseModel):
    kind: Literal["m"] = "m"
    comment_id: str


class Link(BaseModel):
    kind: Literal["a"] = "a"
    url: str


class User(BaseModel):
    kind: Literal["u"] = "u"
    user_id: str


class Highlight(BaseModel):
    kind: Literal["h"] = "h"
    color: str


class Date(BaseModel):
    kind: Literal["d"] = "d"
    date: dict[str, Any]


TextAttr = Union[Bold, Code, Italic, Strikethrough, Comment, Link, User, Highlight, Date]

_FLAG_ATTRS: dict[str, type[BaseModel]] = {
    "b": Bold,
    "c": Code,
    "i": Italic,
    "s": Strikethrough,
}

_VALUE_ATTRS: dict[str, tuple[type[BaseModel], str]] = {
    "m": (Comment, "comment_id"),
    "a": (Link, "url"),
    "u": (User, "user_id"),
    "h": (Highlight, "color"),
}


class TextSpan(BaseModel):
    """A run of text sharing one set of attributes."""

    text: str
    attrs: list[TextAttr] = Field(default_factory=list)

    @property
    def is_plain(self) -> bool:
        """``True`` if the span has no attributes."""
        return not self.attrs


def parse_text_spans(raw: Any) -> list[TextSpan]:
    """Parse the raw JSON value of a text property.

    Args:
        raw: The decoded JSON value, typically ``block["properties"]["title"]``.

    Returns:
        The parsed spans; an empty list for ``None``.

    Raises:
        SpanParseError: If *raw* is not a non-empty list of well-formed spans.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise SpanParseError(f"spans must be a list, got {type(raw).__name__}: {raw!r}")
    if not raw:
        raise SpanParseError("spans list is empty")
    return [_parse_span(item) for item in raw]


def spans_to_text(spans: list[TextSpan]) -> str:
    """Concatenate the text of *spans*."""
    return "".join(span.text for span in spans)


def _parse_span(item: Any) -> TextSpan:
    if not isinstance(item, list) or not item:
        raise SpanParseError(f"span must be a non-empty list, got {item!r}")
    text = item[0]
    if not isinstance(text, str):
        raise SpanParseError(f"span text must be a string, got {type(text).__name__}: {text!r}")
    if len(item) == 1:
        return TextSpan(text=text)
    if len(item) != 2:
        raise SpanParseError(f"span must have 1 or 2 elements, got {len(item)}: {item!r}")
    raw_attrs = item[1]
    if not isinstance(raw_attrs, list):
        raise SpanParseError(f"span attributes must be a list, got {raw_attrs!r}")
    return TextSpan(text=text, attrs=[parse_attr(a) for a in raw_attrs])


def parse_attr(raw: Any) -> TextAttr:
    """Parse one attribute list such as ``["a", "https://example.com"]``.

    Raises:
        SpanParseError: On an empty list, an unknown kind, or values of the
            wrong type or count for the kind.
    """
    if not isinstance(raw, list) or not raw:
        raise SpanParseError(f"attribute must be a non-empty list, got {raw!r}")
    kind = raw[0]
    if not isinstance(kind, str):
        raise SpanParseError(f"attribute kind must be a string, got {kind!r}")
    values = raw[1:]

    if kind in _FLAG_ATTRS:
        if values:
            raise SpanParseError(f"attribute '{kind}' takes no values, got {values!r}")
        return _FLAG_ATTRS[kind]()

    if kind in _VALUE_ATTRS:
        model, field_name = _VALUE_ATTRS[kind]
        if len(values) != 1 or not isinstance(values[0], str):
            raise SpanParseError(f"attribute '{kind}' expects one string value, got {values!r}")
        return model(**{field_name: values[0]})

    if kind == "d":
        if len(values) != 1 or not isinstance(values[0], dict):
            raise SpanParseError(f"date attribute expects one mapping, got {values!r}")
        return Date(date=values[0])

    raise SpanParseError(f"unknown attribute kind '{kind}'")
