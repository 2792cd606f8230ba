"""
Remote fetch client: page image and text annotations for one page index.

Responses are classified in one place into a FetchOutcome. Nothing is
retried here; the scheduler owns the retry policy.
"""

import logging
import threading

import requests

from book_extractor.config import PipelineConfig
from book_extractor.state import FetchOutcome, FetchStatus, SessionContext

logger = logging.getLogger(__name__)

_NOT_FOUND = {404, 410}
_RETRYABLE = {408, 425, 429}


def classify_status(status_code: int) -> FetchStatus:
    if 200 <= status_code < 300:
        return FetchStatus.SUCCESS
    if status_code in _NOT_FOUND:
        return FetchStatus.NOT_FOUND
    if status_code in _RETRYABLE or status_code >= 500:
        return FetchStatus.TRANSIENT
    return FetchStatus.FATAL


def validate_context(ctx: SessionContext) -> None:
    if not isinstance(ctx.get("cookie"), str) or not ctx["cookie"].strip():
        raise ValueError("cookie must be a non-empty string")
    if not isinstance(ctx.get("uuid"), str) or not ctx["uuid"].strip():
        raise ValueError("uuid must be a non-empty string")
    product_id = ctx.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
        raise ValueError(f"product_id must be a positive integer, got {product_id!r}")
    token = ctx.get("auth_token")
    if token is not None and not isinstance(token, str):
        raise ValueError("auth_token must be a string when supplied")


def build_headers(ctx: SessionContext, referer: str | None = None) -> dict[str, str]:
    headers = {"Cookie": ctx["cookie"]}
    if ctx.get("auth_token"):
        headers["X-Authorization"] = ctx["auth_token"]
    if referer:
        headers["Referer"] = referer
    return headers


class PageFetcher:
    """Fetches raw page data for a single book. Safe to share across threads."""

    def __init__(self, ctx: SessionContext, config: PipelineConfig | None = None,
                 session_factory=requests.Session):
        validate_context(ctx)
        self.ctx = ctx
        self.config = config or PipelineConfig()
        self._session_factory = session_factory
        self._headers = build_headers(ctx, self.config.referer)
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update(self._headers)
            self._local.session = session
        return session

    def _book_url(self) -> str:
        return f"{self.config.base_url}/prod1/{self.ctx['product_id']}/{self.ctx['uuid']}"

    def remote_page_number(self, index: int) -> int:
        return index - 1 + self.config.remote_page_base

    def image_url(self, index: int) -> str:
        return f"{self._book_url()}/pages/page{self.remote_page_number(index)}"

    def annotation_url(self, index: int) -> str:
        return f"{self._book_url()}/annotations/page{self.remote_page_number(index)}"

    def _get(self, url: str) -> tuple[FetchStatus, bytes, int | None, str]:
        try:
            resp = self._session().get(url, timeout=self.config.timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            return FetchStatus.TRANSIENT, b"", None, f"{type(exc).__name__}: {exc}"
        except requests.RequestException as exc:
            return FetchStatus.FATAL, b"", None, f"{type(exc).__name__}: {exc}"

        status = classify_status(resp.status_code)
        if status is FetchStatus.SUCCESS:
            return status, resp.content, resp.status_code, ""
        return status, b"", resp.status_code, f"HTTP {resp.status_code} for {url}"

    def fetch_page(self, index: int) -> FetchOutcome:
        if isinstance(index, bool) or not isinstance(index, int) or index < 1:
            raise ValueError(f"page index must be an integer >= 1, got {index!r}")

        status, image, code, message = self._get(self.image_url(index))
        if status is FetchStatus.NOT_FOUND:
            logger.debug("Page %d: image not found (HTTP %s)", index, code)
            return FetchOutcome.not_found(code)
        if status is FetchStatus.TRANSIENT:
            return FetchOutcome.transient(message, code)
        if status is FetchStatus.FATAL:
            return FetchOutcome.fatal(message, code)

        status, annotation, code, message = self._get(self.annotation_url(index))
        if status is FetchStatus.NOT_FOUND:
            # Page exists but carries no text layer.
            logger.debug("Page %d: no annotations (HTTP %s)", index, code)
            annotation = b""
        elif status is FetchStatus.TRANSIENT:
            return FetchOutcome.transient(message, code)
        elif status is FetchStatus.FATAL:
            return FetchOutcome.fatal(message, code)

        return FetchOutcome.success(image, annotation)
