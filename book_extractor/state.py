"""
Shared types for the page acquisition pipeline.
"""

from enum import Enum
from typing import NamedTuple, TypedDict


class TextFragment(TypedDict):
    text: str
    x: float         # PDF page space in points, origin bottom-left, y up
    y: float         # baseline
    width: float
    height: float    # glyph size (em)


class SessionContext(TypedDict):
    cookie: str
    auth_token: str | None
    product_id: int
    uuid: str


class PageResult(NamedTuple):
    index: int                       # 1-indexed
    image: bytes
    fragments: tuple[TextFragment, ...]
    text_degraded: bool = False      # annotation failed to decode, image-only page


class FetchStatus(Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    FATAL = "fatal"


class FetchOutcome(NamedTuple):
    status: FetchStatus
    data: tuple[bytes, bytes] | None = None   # (image, annotation payload)
    http_status: int | None = None
    message: str = ""

    @classmethod
    def success(cls, image: bytes, annotation: bytes) -> "FetchOutcome":
        return cls(FetchStatus.SUCCESS, (image, annotation), 200)

    @classmethod
    def not_found(cls, http_status: int | None = None) -> "FetchOutcome":
        return cls(FetchStatus.NOT_FOUND, None, http_status, "page does not exist")

    @classmethod
    def transient(cls, message: str, http_status: int | None = None) -> "FetchOutcome":
        return cls(FetchStatus.TRANSIENT, None, http_status, message)

    @classmethod
    def fatal(cls, message: str, http_status: int | None = None) -> "FetchOutcome":
        return cls(FetchStatus.FATAL, None, http_status, message)


class RunReport(TypedDict):
    succeeded: bool
    pages: int
    degraded_pages: list[int]
    output_path: str | None
    failed_page: int | None
    failure_kind: str | None
    error: str | None
