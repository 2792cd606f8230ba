"""
PDF document writer (PyMuPDF).

Page sizes come in points. Fragment coordinates are PDF page space and are
placed unchanged, only flipped into fitz's top-down page coordinates. Text
goes through a TextWriter, which embeds the font with a ToUnicode map, so
code points outside Latin-1 stay searchable. It is written with render mode
3 (invisible): not drawn, but searchable and selectable over the image.
"""

import logging
import os
from pathlib import Path

import fitz

from book_extractor.errors import AssemblyError
from book_extractor.state import TextFragment

logger = logging.getLogger(__name__)

FONT_NAME = "helv"
_INVISIBLE = 3


class PdfDocumentWriter:
    def __init__(self, output_path: str | Path, title: str = ""):
        self.output_path = Path(output_path)
        self.title = title
        self._doc: fitz.Document | None = None
        self._finalized = False
        self._font = fitz.Font(FONT_NAME)

    @property
    def temp_path(self) -> Path:
        return self.output_path.with_name(self.output_path.name + ".part")

    def start(self) -> None:
        if self._doc is not None or self._finalized:
            raise AssemblyError("document already started")
        self._doc = fitz.open()
        if self.title:
            self._doc.set_metadata({"title": self.title})

    def _write_fragment(self, page: fitz.Page, fragment: TextFragment) -> None:
        # Fragments use PDF space (y up); fitz page coordinates run y down.
        origin = fitz.Point(fragment["x"], page.rect.height - fragment["y"])
        writer = fitz.TextWriter(page.rect)
        _, end = writer.append(origin, fragment["text"], font=self._font, fontsize=fragment["height"])
        natural = end.x - origin.x
        scale = fragment["width"] / natural if natural > 0 else 1.0
        writer.write_text(page, render_mode=_INVISIBLE, morph=(origin, fitz.Matrix(scale, 1)))

    def add_page(self, image_bytes: bytes, page_width: float, page_height: float,
                 fragments) -> None:
        if self._doc is None:
            raise AssemblyError("add_page called before start")
        page = self._doc.new_page(width=page_width, height=page_height)
        page.insert_image(page.rect, stream=image_bytes)

        for fragment in fragments:
            if fragment["height"] <= 0 or fragment["width"] <= 0:
                logger.debug("Skipping zero-size fragment %r", fragment["text"])
                continue
            self._write_fragment(page, fragment)

    def finalize(self) -> Path:
        if self._finalized:
            raise AssemblyError("document already finalized")
        if self._doc is None:
            raise AssemblyError("finalize called before start")
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.temp_path
        try:
            self._doc.save(str(tmp), garbage=3, deflate=True)
            os.replace(tmp, self.output_path)
        except Exception as exc:
            self.abort()
            raise AssemblyError(f"failed to write {self.output_path}: {exc}") from exc
        self._doc.close()
        self._doc = None
        self._finalized = True
        logger.info("Wrote %s", self.output_path)
        return self.output_path

    def abort(self) -> None:
        """Drop the in-progress document and any partial file."""
        if self._doc is not None:
            self._doc.close()
            self._doc = None
        self.temp_path.unlink(missing_ok=True)
