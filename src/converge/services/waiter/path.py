"""
Field path expressions.

A path is written in dot/bracket notation, e.g. ``status.phase``,
``status.containerStatuses[0].ready`` or
``metadata.annotations["app.kubernetes.io/name"]``. A dotted segment made only
of digits (``status.containerStatuses.0.ready``) is an integer index, the same
as ``[0]``. Splat segments (``*``) are not supported.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Tuple, Union

from converge.core.errors import PathSyntaxError

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_INTEGER = re.compile(r"[0-9]+")
_NUMBER = re.compile(r"-?[0-9]+(\.[0-9]*)?([eE][+-]?[0-9]+)?")
_HEX = re.compile(r"[0-9A-Fa-f]+")
_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "/": "/",
    '"': '"',
    "\\": "\\",
}


@dataclass(frozen=True)
class FieldStep:
    """Select a named attribute of a map."""

    name: str

    def __str__(self) -> str:
        return f".{self.name}"


@dataclass(frozen=True)
class IndexStep:
    """Select a list element (int key) or a map entry (str key)."""

    key: Union[int, str]

    def __str__(self) -> str:
        if isinstance(self.key, int):
            return f"[{self.key}]"
        return f"[{json.dumps(self.key)}]"


Step = Union[FieldStep, IndexStep]


@dataclass(frozen=True)
class PathExpression:
    """An immutable, parsed field path."""

    steps: Tuple[Step, ...]

    @classmethod
    def parse(cls, text: str) -> "PathExpression":
        return parse(text)

    def __str__(self) -> str:
        rendered = "".join(str(s) for s in self.steps)
        return rendered[1:] if rendered.startswith(".") else rendered

    def __len__(self) -> int:
        return len(self.steps)


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def fail(self, detail: str) -> PathSyntaxError:
        return PathSyntaxError(self.text, detail)

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if not self.at_end() else ""

    def match(self, pattern: "re.Pattern[str]") -> str:
        m = pattern.match(self.text, self.pos)
        if not m:
            return ""
        self.pos = m.end()
        return m.group(0)

    def parse(self) -> PathExpression:
        if not self.text:
            raise self.fail("path is empty")

        if self.peek() == "*":
            raise self.fail("splat is not supported")
        root = self.match(_IDENTIFIER)
        if not root:
            raise self.fail(f"expected attribute name at offset {self.pos}")
        steps: list[Step] = [FieldStep(root)]

        while not self.at_end():
            ch = self.peek()
            if ch == ".":
                self.pos += 1
                steps.append(self._dotted_segment())
            elif ch == "[":
                self.pos += 1
                steps.append(self._bracket_segment())
            else:
                raise self.fail(f"unexpected character {ch!r} at offset {self.pos}")

        return PathExpression(tuple(steps))

    def _dotted_segment(self) -> Step:
        if self.peek() == "*":
            raise self.fail("splat is not supported")
        digits = self.match(_INTEGER)
        if digits:
            if self.peek() and self.peek() not in ".[":
                raise self.fail(f"invalid attribute name at offset {self.pos - len(digits)}")
            return IndexStep(int(digits))
        name = self.match(_IDENTIFIER)
        if not name:
            raise self.fail(f"expected attribute name at offset {self.pos}")
        return FieldStep(name)

    def _bracket_segment(self) -> Step:
        ch = self.peek()
        if ch == "*":
            raise self.fail("splat is not supported")
        if ch == '"':
            key: Union[int, str] = self._quoted_string()
        else:
            number = self.match(_NUMBER)
            if not number:
                raise self.fail(f"expected index or quoted key at offset {self.pos}")
            if not _INTEGER.fullmatch(number):
                raise self.fail("index in field path must be an integer")
            key = int(number)
        if self.peek() != "]":
            raise self.fail(f"missing closing bracket at offset {self.pos}")
        self.pos += 1
        return IndexStep(key)

    def _quoted_string(self) -> str:
        # opening quote
        self.pos += 1
        out: list[str] = []
        while not self.at_end():
            ch = self.peek()
            self.pos += 1
            if ch == "\\":
                if self.at_end():
                    break
                out.append(self._escape())
            elif ch == '"':
                return "".join(out)
            else:
                out.append(ch)
        raise self.fail("unterminated quoted key")

    def _escape(self) -> str:
        ch = self.peek()
        self.pos += 1
        if ch in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[ch]
        if ch in ("u", "U"):
            code = self._hex_digits(ch, 4 if ch == "u" else 8)
            # json.dumps writes non-BMP characters as a \uD8xx\uDCxx pair
            if 0xD800 <= code <= 0xDBFF and self.text.startswith("\\u", self.pos):
                self.pos += 2
                low = self._hex_digits("u", 4)
                if not 0xDC00 <= low <= 0xDFFF:
                    raise self.fail(f"invalid surrogate pair \\u{code:04x}\\u{low:04x}")
                code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
            try:
                return chr(code)
            except ValueError as e:
                raise self.fail(f"invalid code point \\{ch}{code:x}") from e
        raise self.fail(f"invalid escape \\{ch} in quoted key")

    def _hex_digits(self, escape: str, width: int) -> int:
        digits = self.text[self.pos : self.pos + width]
        if len(digits) != width or not _HEX.fullmatch(digits):
            raise self.fail(f"invalid \\{escape} escape, expected {width} hex digits")
        self.pos += width
        return int(digits, 16)


def parse(text: str) -> PathExpression:
    """Parse ``text`` into a PathExpression, raising PathSyntaxError if malformed."""
    if not isinstance(text, str):
        raise PathSyntaxError(repr(text), "path must be a string")
    return _Parser(text).parse()


_MISSING = object()


def _step(node: Any, step: Step) -> Any:
    if isinstance(step, FieldStep):
        if isinstance(node, dict):
            return node.get(step.name, _MISSING)
        return _MISSING

    if isinstance(step.key, int):
        if isinstance(node, list) and 0 <= step.key < len(node):
            return node[step.key]
        return _MISSING

    if isinstance(node, dict):
        return node.get(step.key, _MISSING)
    return _MISSING


def walk(path: PathExpression, tree: Any) -> Tuple[Any, bool]:
    """
    Navigate ``tree`` along ``path``.

    Returns ``(value, True)`` when every step resolved, else ``(None, False)``.
    Stepping by name into a non-map or by integer into a non-list is a type
    mismatch and reports not-found; it never raises.
    """
    node = tree
    for step in path.steps:
        node = _step(node, step)
        if node is _MISSING:
            return None, False
    return node, True
