"""
Annotation decoding: remote text-annotation payload -> TextFragments.

Payload shape served by the remote source:

    {"TextPageData": "<json>"}  with  <json> = {"texts": [{"mt": [a, b, c, d, e, f], "cs": [[x, y, w, h, cp], ...]}]}

Each `texts` entry is a text run drawn with the text matrix `mt` at font
size 1, so the run's glyph size is the matrix scale. Each `cs` entry is one
glyph whose (x, y) replaces the matrix translation: the glyph's baseline
origin in PDF page space (points, origin bottom-left, y up). `w` is used as
the glyph advance when positive; `h` carries no geometry.
"""

import json
import logging
import math
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from book_extractor.errors import DecodeError
from book_extractor.state import TextFragment

logger = logging.getLogger(__name__)

_Num = Annotated[float, Field(allow_inf_nan=False)]

_FALLBACK_ADVANCE = 0.5   # em, for glyphs served without an advance


class _Text(BaseModel):
    model_config = ConfigDict(extra="ignore")

    matrix: tuple[_Num, _Num, _Num, _Num, _Num, _Num] = Field(alias="mt")
    glyphs: list[tuple[_Num, _Num, _Num, _Num, int]] = Field(alias="cs")


class _TextPageData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    texts: list[_Text]


class _Annotation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: _TextPageData = Field(alias="TextPageData")

    @field_validator("data", mode="before")
    @classmethod
    def _parse_embedded_json(cls, value):
        # Served as a JSON document embedded in a string.
        if isinstance(value, (str, bytes)):
            try:
                return json.loads(value)
            except ValueError as exc:
                raise ValueError(f"TextPageData is not valid JSON: {exc}") from exc
        return value


def _char(codepoint: int) -> str | None:
    if codepoint < 0 or codepoint > 0x10FFFF or 0xD800 <= codepoint <= 0xDFFF:
        return None
    return chr(codepoint)


def _fragment(text: _Text) -> TextFragment | None:
    a, b, c, d, _, _ = text.matrix
    size = math.hypot(c, d)          # vertical glyph scale
    advance = _FALLBACK_ADVANCE * math.hypot(a, b)

    chars: list[str] = []
    x0 = baseline = math.inf
    x1 = -math.inf
    for x, y, w, _, codepoint in text.glyphs:
        char = _char(codepoint)
        if char is None:
            continue
        chars.append(char)
        x0 = min(x0, x)
        baseline = min(baseline, y)
        x1 = max(x1, x + (w if w > 0 else advance))

    joined = "".join(chars)
    if not joined.strip() or size <= 0:
        return None
    return TextFragment(text=joined, x=x0, y=baseline, width=x1 - x0, height=size)


def _summarize(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first["loc"]) or "<root>"
    return f"{loc}: {first['msg']} ({exc.error_count()} error(s))"


def decode(payload: bytes) -> list[TextFragment]:
    """Parse one page's annotation payload. Raises DecodeError on bad input."""
    if not payload or not payload.strip():
        return []

    try:
        annotation = _Annotation.model_validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(f"malformed annotation payload: {_summarize(exc)}") from exc

    fragments = []
    for text in annotation.data.texts:
        fragment = _fragment(text)
        if fragment is not None:
            fragments.append(fragment)
    return fragments
