"""
Error taxonomy for a book extraction run.

Every error carries the page index (when one applies) and a short failure
kind so the CLI can report exactly where a run stopped. Reaching the end of
the book is not an error: it is a FetchOutcome with status NOT_FOUND.
"""


class BookExtractorError(Exception):
    kind = "error"

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.message = message
        self.index = index

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"page {self.index}: {self.message}"


class TransientFetchError(BookExtractorError):
    """Network failure or retryable status; retried by the scheduler."""

    kind = "transient"

    def __init__(self, message: str, index: int | None = None, http_status: int | None = None):
        super().__init__(message, index)
        self.http_status = http_status


class FatalFetchError(BookExtractorError):
    """Aborts the whole run. No document is written."""

    kind = "fetch"

    def __init__(self, message: str, index: int | None = None, kind: str | None = None,
                 http_status: int | None = None):
        super().__init__(message, index)
        if kind is not None:
            self.kind = kind
        self.http_status = http_status


class DecodeError(BookExtractorError):
    kind = "decode"


class AssemblyError(BookExtractorError):
    kind = "assembly"
