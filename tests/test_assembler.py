"""Tests for page-ordered document assembly."""
import pytest

from conftest import RecordingWriter, make_png
from book_extractor.state import PageResult


def _page(index, width=40, height=60, fragments=()):
    return PageResult(index, make_png(width, height), tuple(fragments))


class TestContiguity:
    def test_gap_rejected(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import assemble
        writer = RecordingWriter()
        with pytest.raises(AssemblyError) as exc_info:
            assemble([_page(1), _page(2), _page(4)], writer)
        assert exc_info.value.index == 3
        assert writer.events == []

    def test_must_start_at_one(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import check_contiguous
        with pytest.raises(AssemblyError, match="page 1 missing"):
            check_contiguous([_page(2), _page(3)])

    def test_duplicate_rejected(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import check_contiguous
        with pytest.raises(AssemblyError, match="duplicated"):
            check_contiguous([_page(1), _page(1)])

    def test_empty_rejected(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import assemble
        with pytest.raises(AssemblyError):
            assemble([], RecordingWriter())


class TestAssemble:
    def test_pages_in_order_with_image_size(self):
        from book_extractor.pipeline.assembler import assemble
        fragment = {"text": "Hello", "x": 10.0, "y": 20.0, "width": 50.0, "height": 12.0}
        results = [_page(1, 30, 50, [fragment]), _page(2, 64, 32)]
        writer = RecordingWriter()
        assert assemble(results, writer, dpi=72) == 2
        assert writer.events == ["start", "add_page", "add_page", "finalize"]
        assert [(w, h) for _, w, h, _ in writer.pages] == [(30, 50), (64, 32)]
        assert writer.pages[0][3] == [fragment]
        assert writer.pages[0][0] == results[0].image

    def test_unreadable_image_aborts(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import assemble
        writer = RecordingWriter()
        with pytest.raises(AssemblyError) as exc_info:
            assemble([_page(1), PageResult(2, b"<html>oops</html>", ())], writer)
        assert exc_info.value.index == 2
        assert writer.events[-1] == "abort"
        assert "finalize" not in writer.events

    def test_writer_failure_aborts(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import assemble
        writer = RecordingWriter(fail_on_page=2)
        with pytest.raises(AssemblyError, match="disk full") as exc_info:
            assemble([_page(1), _page(2), _page(3)], writer)
        assert exc_info.value.index == 2
        assert writer.events == ["start", "add_page", "abort"]

    def test_page_size_at_served_resolution(self):
        from book_extractor.pipeline.assembler import assemble
        writer = RecordingWriter()
        assemble([_page(1, 1524, 3048)], writer)
        _, width, height, _ = writer.pages[0]
        assert width == pytest.approx(360)
        assert height == pytest.approx(720)

    def test_writer_start_failure_is_reported(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import assemble
        writer = RecordingWriter(fail_on_start=True)
        with pytest.raises(AssemblyError, match="read-only"):
            assemble([_page(1)], writer)
        assert writer.events == ["abort"]


class TestImageDimensions:
    def test_reads_size_from_bytes(self):
        from book_extractor.pipeline.assembler import image_dimensions
        assert image_dimensions(make_png(123, 45)) == (123, 45)

    def test_garbage(self):
        from book_extractor.errors import AssemblyError
        from book_extractor.pipeline.assembler import image_dimensions
        with pytest.raises(AssemblyError):
            image_dimensions(b"", 9)
