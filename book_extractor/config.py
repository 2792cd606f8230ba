"""
Run configuration. Values come from CLI flags, falling back to environment
variables (a .env file is loaded by main via python-dotenv).
"""

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://plus.pearson.com/eplayer/pdfassets"
DEFAULT_REFERER = "https://plus.pearson.com/"
DEFAULT_TITLE = "Pearson Plus"
DEFAULT_OUTPUT = "out.pdf"
DEFAULT_IMAGE_DPI = 304.8

DECODE_POLICIES = ("degrade", "fail")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class PipelineConfig:
    base_url: str = DEFAULT_BASE_URL
    referer: str | None = DEFAULT_REFERER
    remote_page_base: int = 0   # remote number of page index 1
    concurrency: int = 8
    max_retries: int = 4        # attempts per page, first one included
    backoff_multiplier: float = 0.5
    backoff_max: float = 10.0
    timeout: float = 30.0
    image_dpi: float = DEFAULT_IMAGE_DPI   # page images are served at 12 px per mm
    page_count: int | None = None
    max_pages: int = 5000       # probe cap when page_count is unknown
    on_decode_error: str = "degrade"
    title: str = DEFAULT_TITLE

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.page_count is not None and self.page_count < 1:
            raise ValueError(f"page_count must be >= 1, got {self.page_count}")
        if self.image_dpi <= 0:
            raise ValueError(f"image_dpi must be > 0, got {self.image_dpi}")
        if self.max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {self.max_pages}")
        if self.on_decode_error not in DECODE_POLICIES:
            raise ValueError(
                f"on_decode_error must be one of {DECODE_POLICIES}, got {self.on_decode_error!r}"
            )

    @property
    def page_limit(self) -> int:
        """Highest page index the scheduler may dispatch."""
        if self.page_count is not None:
            return self.page_count
        return self.max_pages

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        values = {
            "concurrency": _env_int("BOOK_CONCURRENCY", cls.concurrency),
            "max_retries": _env_int("BOOK_MAX_RETRIES", cls.max_retries),
            "timeout": _env_float("BOOK_TIMEOUT", cls.timeout),
            "image_dpi": _env_float("BOOK_IMAGE_DPI", cls.image_dpi),
        }
        base_url = os.getenv("BOOK_BASE_URL")
        if base_url:
            values["base_url"] = base_url.rstrip("/")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
