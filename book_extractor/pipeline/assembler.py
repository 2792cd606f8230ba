"""
Page-ordered document assembly.

Pages must be contiguous from 1. Each page is sized from its image's pixel
dimensions, read from the image bytes, at the image resolution (12 px per
mm as served). The writer is finalized once; on any failure it is aborted
so no partial output is left behind.
"""

import io
import logging
from typing import Sequence

from PIL import Image, UnidentifiedImageError

from book_extractor.config import DEFAULT_IMAGE_DPI
from book_extractor.errors import AssemblyError
from book_extractor.state import PageResult

logger = logging.getLogger(__name__)


def image_dimensions(image: bytes, index: int | None = None) -> tuple[int, int]:
    try:
        with Image.open(io.BytesIO(image)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise AssemblyError(f"unreadable page image: {exc}", index) from exc
    if width <= 0 or height <= 0:
        raise AssemblyError(f"invalid image size {width}x{height}", index)
    return width, height


def check_contiguous(results: Sequence[PageResult]) -> None:
    """Raise AssemblyError unless indices are exactly 1..n in order."""
    if not results:
        raise AssemblyError("no pages to assemble")
    for expected, result in enumerate(results, start=1):
        if result.index != expected:
            kind = "duplicated" if result.index < expected else "missing"
            raise AssemblyError(f"page sequence gap: page {expected} {kind}", expected)


def page_size(width: int, height: int, dpi: float = DEFAULT_IMAGE_DPI) -> tuple[float, float]:
    """Page size in points for an image of `width` x `height` pixels."""
    return width * 72 / dpi, height * 72 / dpi


def assemble(results: Sequence[PageResult], writer, dpi: float = DEFAULT_IMAGE_DPI) -> int:
    """Write every page in index order through `writer`. Returns the page count."""
    check_contiguous(results)

    current: int | None = None
    try:
        writer.start()
        for result in results:
            current = result.index
            width, height = image_dimensions(result.image, result.index)
            writer.add_page(result.image, *page_size(width, height, dpi), result.fragments)
            logger.debug("Page %d: %dx%d px, %d text fragments", result.index, width, height,
                         len(result.fragments))
        current = None
        logger.info("Saving the document. This may take a while.")
        writer.finalize()
    except AssemblyError:
        writer.abort()
        raise
    except Exception as exc:
        writer.abort()
        raise AssemblyError(f"{type(exc).__name__}: {exc}", current) from exc

    logger.info("Assembly complete: %d pages", len(results))
    return len(results)
