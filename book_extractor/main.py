"""CLI entry point for the searchable e-book extractor."""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from book_extractor.config import DECODE_POLICIES, DEFAULT_OUTPUT, DEFAULT_TITLE, PipelineConfig
from book_extractor.errors import BookExtractorError
from book_extractor.pipeline.assembler import assemble
from book_extractor.pipeline.fetcher import PageFetcher
from book_extractor.pipeline.scheduler import PageScheduler
from book_extractor.pipeline.writer import PdfDocumentWriter
from book_extractor.state import RunReport, SessionContext

logger = logging.getLogger(__name__)


def run_pipeline(
    ctx: SessionContext,
    output_path: str | Path = DEFAULT_OUTPUT,
    config: PipelineConfig | None = None,
    fetcher=None,
    writer=None,
) -> RunReport:
    """Fetch every page, assemble the PDF, and report how the run ended."""
    config = config or PipelineConfig()
    report = RunReport(
        succeeded=False,
        pages=0,
        degraded_pages=[],
        output_path=None,
        failed_page=None,
        failure_kind=None,
        error=None,
    )

    try:
        fetcher = fetcher or PageFetcher(ctx, config)
        results = PageScheduler(fetcher, config).run()
        report["degraded_pages"] = [r.index for r in results if r.text_degraded]

        writer = writer or PdfDocumentWriter(output_path, title=config.title)
        report["pages"] = assemble(results, writer, dpi=config.image_dpi)
    except BookExtractorError as exc:
        report["failed_page"] = exc.index
        report["failure_kind"] = exc.kind
        report["error"] = exc.message
        return report

    report["succeeded"] = True
    report["output_path"] = str(output_path)
    return report


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Download an e-book as a searchable PDF.")
    parser.add_argument("--cookie", "-c", default=os.getenv("BOOK_COOKIE"),
                        help="Value of the Cookie header (env BOOK_COOKIE)")
    parser.add_argument("--auth-token", "-a", default=os.getenv("BOOK_AUTH_TOKEN"),
                        help="Value of the X-Authorization header, if any (env BOOK_AUTH_TOKEN)")
    parser.add_argument("--product-id", "-p", type=int, default=os.getenv("BOOK_PRODUCT_ID"),
                        help="Product id of the book (env BOOK_PRODUCT_ID)")
    parser.add_argument("--uuid", "-u", default=os.getenv("BOOK_UUID"),
                        help="UUID of the book (env BOOK_UUID)")
    parser.add_argument("--output-path", "-o", default=DEFAULT_OUTPUT)
    parser.add_argument("--pages", type=int, default=None,
                        help="Known page count; probe until not found when omitted")
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--retries", type=int, default=None, help="Attempts per page")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout (seconds)")
    parser.add_argument("--image-dpi", type=float, default=None,
                        help="Resolution of the served page images (default 304.8, i.e. 12 px/mm)")
    parser.add_argument("--on-decode-error", default="degrade", choices=DECODE_POLICIES)
    parser.add_argument("--title", default=DEFAULT_TITLE)
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    missing = [flag for flag, value in (("--cookie", args.cookie), ("--product-id", args.product_id),
                                        ("--uuid", args.uuid)) if not value]
    if missing:
        parser.error(f"missing required option(s): {', '.join(missing)}")

    ctx = SessionContext(
        cookie=args.cookie,
        auth_token=args.auth_token or None,
        product_id=int(args.product_id),
        uuid=args.uuid,
    )
    try:
        config = PipelineConfig.from_env(
            page_count=args.pages,
            concurrency=args.concurrency,
            max_retries=args.retries,
            timeout=args.timeout,
            image_dpi=args.image_dpi,
            on_decode_error=args.on_decode_error,
            title=args.title,
        )
    except ValueError as exc:
        parser.error(str(exc))

    start = time.time()
    logger.info("Downloading book %s (product %d) -> %s", ctx["uuid"], ctx["product_id"], args.output_path)

    try:
        report = run_pipeline(ctx, args.output_path, config)
    except ValueError as exc:
        logger.error("Invalid input: %s", exc)
        return 1
    except Exception:
        logger.exception("Pipeline failed")
        return 1

    if not report["succeeded"]:
        where = f" at page {report['failed_page']}" if report["failed_page"] is not None else ""
        logger.error("Run failed (%s)%s: %s", report["failure_kind"], where, report["error"])
        return 1

    if report["degraded_pages"]:
        logger.warning("%d page(s) have no text layer: %s",
                       len(report["degraded_pages"]), report["degraded_pages"])
    logger.info("Done: %d pages -> %s (%.1fs)",
                report["pages"], report["output_path"], time.time() - start)
    return 0


if __name__ == "__main__":
    sys.exit(main())
