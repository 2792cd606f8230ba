"""
Page task scheduler: fetch + decode every page over a bounded thread pool.

Pages are dispatched in increasing index order, at most `concurrency` at a
time. The first NOT_FOUND page marks the end of the book: no further pages
are dispatched, pages already in flight finish, and anything past the end is
discarded. Results are released sorted and contiguous from page 1.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable

from tenacity import Retrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from book_extractor.config import PipelineConfig
from book_extractor.errors import DecodeError, FatalFetchError, TransientFetchError
from book_extractor.pipeline.decoder import decode
from book_extractor.state import FetchOutcome, FetchStatus, PageResult

logger = logging.getLogger(__name__)


class PageScheduler:
    def __init__(
        self,
        fetcher,
        config: PipelineConfig | None = None,
        on_page: Callable[[int], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.fetcher = fetcher
        self.config = config or PipelineConfig()
        self.on_page = on_page
        self._sleep = sleep

    # -- per-page work (runs in worker threads) ---------------------------

    def _attempt(self, index: int) -> FetchOutcome:
        outcome = self.fetcher.fetch_page(index)
        if outcome.status is FetchStatus.TRANSIENT:
            raise TransientFetchError(outcome.message, index, outcome.http_status)
        return outcome

    def _fetch_with_retry(self, index: int) -> FetchOutcome:
        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(multiplier=self.config.backoff_multiplier, max=self.config.backoff_max),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=lambda rs: logger.warning(
                "Page %d: %s, retrying (attempt %d/%d)",
                index, rs.outcome.exception().message, rs.attempt_number, self.config.max_retries,
            ),
            sleep=self._sleep,
        )
        try:
            return retrying(self._attempt, index)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise FatalFetchError(
                f"retries exhausted after {self.config.max_retries} attempts: {last.message}",
                index,
                http_status=last.http_status,
            ) from last

    def _process(self, index: int) -> PageResult | None:
        """Fetch and decode one page. None means the page does not exist."""
        outcome = self._fetch_with_retry(index)
        if outcome.status is FetchStatus.NOT_FOUND:
            return None
        if outcome.status is FetchStatus.FATAL:
            raise FatalFetchError(outcome.message, index, http_status=outcome.http_status)

        image, payload = outcome.data
        try:
            fragments = decode(payload)
        except DecodeError as exc:
            if self.config.on_decode_error == "fail":
                raise FatalFetchError(exc.message, index, kind="decode") from exc
            logger.warning("Page %d: %s; keeping image without text layer", index, exc.message)
            return PageResult(index, image, (), text_degraded=True)
        return PageResult(index, image, tuple(fragments))

    # -- dispatch loop (caller thread) ------------------------------------

    def run(self) -> list[PageResult]:
        limit = self.config.page_limit
        results: dict[int, PageResult] = {}
        failures: dict[int, FatalFetchError] = {}
        end: int | None = None
        next_index = 1

        def can_dispatch() -> bool:
            return end is None and not failures and next_index <= limit

        with ThreadPoolExecutor(max_workers=self.config.concurrency) as pool:
            in_flight: dict[Future, int] = {}
            while in_flight or can_dispatch():
                while len(in_flight) < self.config.concurrency and can_dispatch():
                    in_flight[pool.submit(self._process, next_index)] = next_index
                    next_index += 1

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=in_flight.get):
                    index = in_flight.pop(future)
                    try:
                        result = future.result()
                    except FatalFetchError as exc:
                        logger.error("Page %d failed: %s", index, exc.message)
                        failures[index] = exc
                        continue

                    if result is None:
                        if end is None or index < end:
                            logger.info("Page %d not found, end of book", index)
                            end = index
                        continue

                    results[index] = result
                    logger.info("Downloaded page %04d.", index)
                    if self.on_page:
                        self.on_page(index)

        stop = end if end is not None else next_index
        if end is None and not failures and self.config.page_count is None:
            logger.warning("Stopped probing at the page cap (%d) without reaching the end of the book", limit)

        blocking = sorted(i for i in failures if i < stop)
        if blocking:
            raise failures[blocking[0]]
        if stop == 1:
            raise FatalFetchError("book has no pages", 1, kind="empty")

        discarded = sorted(i for i in results if i >= stop)
        if discarded:
            logger.info("Discarded %d page(s) past the end of the book: %s", len(discarded), discarded)

        pages = []
        for index in range(1, stop):
            if index not in results:
                raise FatalFetchError("no result collected", index)
            pages.append(results[index])
        return pages
