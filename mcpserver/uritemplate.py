"""URI templates (RFC 6570) used to match resource URIs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote

_PCT = r"%[0-9A-Fa-f]{2}"
_UNRESERVED = rf"(?:[A-Za-z0-9\-._~]|{_PCT})"
_RESERVED = rf"(?:[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=]|{_PCT})"
_VARNAME = re.compile(rf"(?:[A-Za-z0-9_]|{_PCT})(?:\.?(?:[A-Za-z0-9_]|{_PCT}))*")
_RESERVED_OPERATORS = "=,!@|"


@dataclass(frozen=True)
class _Operator:
    prefix: str
    separator: str
    named: bool = False
    allow_reserved: bool = False
    bare_when_empty: bool = False


_OPERATORS = {
    "": _Operator("", ","),
    "+": _Operator("", ",", allow_reserved=True),
    "#": _Operator("#", ",", allow_reserved=True),
    ".": _Operator(".", "."),
    "/": _Operator("/", "/"),
    ";": _Operator(";", ";", named=True, bare_when_empty=True),
    "?": _Operator("?", "&", named=True),
    "&": _Operator("&", "&", named=True),
}


@dataclass(frozen=True)
class _VarSpec:
    name: str
    explode: bool = False
    max_length: int | None = None


def _parse_varspec(text: str) -> _VarSpec:
    explode = text.endswith("*")
    if explode:
        text = text[:-1]
    max_length = None
    if ":" in text:
        text, _, length = text.partition(":")
        if explode or not length.isdigit() or not 0 < int(length) < 10000:
            raise ValueError(f"invalid prefix modifier in variable {text!r}")
        max_length = int(length)
    if not _VARNAME.fullmatch(text):
        raise ValueError(f"invalid variable name {text!r}")
    return _VarSpec(text, explode, max_length)


def _list_pattern(value: str, separator: str, chars: str) -> str:
    # A separator that may also appear inside a value makes a repetition ambiguous.
    if re.fullmatch(chars, separator):
        return value
    return f"{value}(?:{re.escape(separator)}{value})*"


def _var_pattern(op: _Operator, spec: _VarSpec) -> str:
    chars = _RESERVED if op.allow_reserved else _UNRESERVED
    value = f"{chars}{{0,{spec.max_length}}}" if spec.max_length else f"{chars}*"
    if not op.named:
        return _list_pattern(value, op.separator if spec.explode else ",", chars)
    name = re.escape(spec.name)
    if spec.explode:
        assign = f"(?:={value})?" if op.bare_when_empty else f"={value}"
        return _list_pattern(name + assign, op.separator, chars)
    values = _list_pattern(value, ",", chars)
    assign = f"(?:={values})?" if op.bare_when_empty else f"={values}"
    return name + assign


def _decode(op: _Operator, spec: _VarSpec, text: str) -> list[str]:
    if op.named:
        items = text.split(op.separator) if spec.explode else [text]
        values: list[str] = []
        for item in items:
            _, _, value = item.partition("=")
            values.extend([value] if spec.explode else value.split(","))
    else:
        values = text.split(op.separator if spec.explode else ",")
    return [unquote(value) for value in values]


class URITemplate:
    """A parsed URI template that can test and decompose URIs."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        self._variables: list[tuple[str, _Operator, _VarSpec]] = []
        self.pattern = re.compile(self._build(raw))

    def _build(self, raw: str) -> str:
        parts: list[str] = []
        pos = 0
        while pos < len(raw):
            start = raw.find("{", pos)
            literal_end = len(raw) if start == -1 else start
            if "}" in raw[pos:literal_end]:
                raise ValueError(f"unexpected '}}' in template {raw!r}")
            parts.append(re.escape(raw[pos:literal_end]))
            if start == -1:
                break
            end = raw.find("}", start + 1)
            if end == -1:
                raise ValueError(f"unterminated expression in template {raw!r}")
            parts.append(self._expression(raw[start + 1 : end]))
            pos = end + 1
        return "".join(parts)

    def _expression(self, body: str) -> str:
        if not body:
            raise ValueError("empty expression in template")
        if body[0] in _RESERVED_OPERATORS:
            raise ValueError(f"reserved operator {body[0]!r} in template")
        op_char = body[0] if body[0] in "+#./;?&" else ""
        op = _OPERATORS[op_char]
        specs = [_parse_varspec(text) for text in body[len(op_char) :].split(",")]
        pieces = []
        for position, spec in enumerate(specs):
            group = f"v{len(self._variables)}"
            self._variables.append((group, op, spec))
            lead = re.escape(op.prefix if position == 0 else op.separator)
            pieces.append(f"{lead}(?P<{group}>{_var_pattern(op, spec)})")
        pattern = ""
        for piece in reversed(pieces):
            pattern = f"{piece}(?:{pattern})?" if pattern else piece
        return f"(?:{pattern})?"

    def matches(self, uri: str) -> bool:
        """Whether the whole URI fits the template."""
        return self.pattern.fullmatch(uri) is not None

    def match(self, uri: str) -> dict[str, list[str]] | None:
        """Variable values extracted from the URI, or None when it does not fit."""
        found = self.pattern.fullmatch(uri)
        if found is None:
            return None
        result: dict[str, list[str]] = {}
        for group, op, spec in self._variables:
            text = found.group(group)
            if text is not None:
                result[spec.name] = _decode(op, spec, text)
        return result

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"URITemplate({self.raw!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, URITemplate):
            return self.raw == other.raw
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.raw)