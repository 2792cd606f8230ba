import io
import json
import time

import pytest
from PIL import Image

from book_extractor.state import FetchOutcome


def make_png(width: int = 40, height: int = 60, color=(255, 255, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_annotation(runs: list[tuple[str, float, float, float, float]]) -> bytes:
    """Build a payload with one text run per (text, x, baseline_y, advance, size).

    Coordinates are PDF page space (y up). The run size lives in the text
    matrix; glyph heights are served as 0.
    """
    texts = []
    for text, x, y, advance, size in runs:
        cs = [[x + i * advance, y, advance, 0, ord(ch)] for i, ch in enumerate(text)]
        texts.append({"mt": [size, 0, 0, size, x, y], "cs": cs})
    inner = json.dumps({"texts": texts})
    return json.dumps({"TextPageData": inner}).encode()


class FakeResponse:
    def __init__(self, status_code: int, content: bytes = b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """Stands in for requests.Session. `routes` maps URL -> response, exception, or list of them."""

    def __init__(self, routes):
        self.routes = routes
        self.headers = {}
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append(url)
        route = self.routes.get(url, FakeResponse(404))
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        return route


class FakeFetcher:
    """Scripted fetcher: `pages` maps index -> outcome or list of outcomes (one per attempt)."""

    def __init__(self, pages, delays=None):
        self.pages = pages
        self.delays = delays or {}
        self.calls = []

    def fetch_page(self, index):
        self.calls.append(index)
        if index in self.delays:
            time.sleep(self.delays[index])
        outcome = self.pages.get(index, FetchOutcome.not_found(404))
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        return outcome


class RecordingWriter:
    def __init__(self, fail_on_page=None, fail_on_start=False):
        self.events = []
        self.pages = []
        self.fail_on_page = fail_on_page
        self.fail_on_start = fail_on_start

    def start(self):
        if self.fail_on_start:
            raise PermissionError("output directory is read-only")
        self.events.append("start")

    def add_page(self, image_bytes, page_width, page_height, fragments):
        if self.fail_on_page is not None and len(self.pages) + 1 == self.fail_on_page:
            raise OSError("disk full")
        self.pages.append((image_bytes, page_width, page_height, list(fragments)))
        self.events.append("add_page")

    def finalize(self):
        self.events.append("finalize")
        return "out.pdf"

    def abort(self):
        self.events.append("abort")


def ok(index: int, width: int = 40, height: int = 60, runs=None) -> FetchOutcome:
    runs = runs if runs is not None else [(f"page{index}", 2, 3, 4, 10)]
    return FetchOutcome.success(make_png(width, height), make_annotation(runs))


@pytest.fixture
def no_sleep():
    return lambda seconds: None
