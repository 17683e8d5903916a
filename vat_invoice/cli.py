"""Command line front end: extract VAT invoice images to JSON/Markdown."""
import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from tqdm import tqdm

from vat_invoice.config import Settings
from vat_invoice.core.batch import BatchOrchestrator
from vat_invoice.core.export import EXPORT_FORMATS, to_json, to_markdown, write_exports
from vat_invoice.core.extraction import GeminiInvoiceExtractor
from vat_invoice.core.images import ImageSelection
from vat_invoice.core.models import BatchSummary, ProcessedResult
from vat_invoice.logging_config import setup_logging

logger = logging.getLogger("vat_invoice.cli")

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_NOTHING_TO_PROCESS = 2


def expand_inputs(paths: Sequence[str]) -> list[Path]:
    """Expand directories into the files they contain (sorted, non-recursive)."""
    expanded = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            expanded.extend(sorted(p for p in path.iterdir() if p.is_file()))
        else:
            expanded.append(path)
    return expanded


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vat-invoice",
        description="Extract structured data from Vietnamese VAT invoice images with Gemini"
    )
    parser.add_argument("paths", nargs="+",
                        help="Invoice images (JPG, PNG, WEBP) or folders containing them")
    parser.add_argument("--output-dir", default=None,
                        help="Folder for exported files (default: settings output_directory)")
    parser.add_argument("--format", dest="formats", action="append", choices=sorted(EXPORT_FORMATS),
                        help="Export format; repeat for several (default: json and md)")
    parser.add_argument("--max-concurrency", type=_positive_int, default=None,
                        help="Cap on concurrent extraction calls (default: unbounded)")
    parser.add_argument("--timeout", type=_positive_float, default=None,
                        help="Per-file extraction timeout in seconds (default: none)")
    parser.add_argument("--print", dest="print_format", choices=sorted(EXPORT_FORMATS), default=None,
                        help="Also print each extracted record to stdout in this format")
    parser.add_argument("--logs", default=None,
                        help="Logs folder (default: settings logs_directory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console")
    return parser


def _report_result(result: ProcessedResult, output_dir: Path, formats: Sequence[str],
                   print_format: Optional[str]) -> None:
    if result.data is None:
        print(f"✗ {result.file.name}: {result.error}", file=sys.stderr)
        return

    written = write_exports(result.data, result.file.name, output_dir, formats)
    print(f"✓ {result.file.name} -> {', '.join(p.name for p in written)}")
    if print_format == "json":
        print(to_json(result.data))
    elif print_format == "md":
        print(to_markdown(result.data))


async def run(args: argparse.Namespace, settings: Settings) -> int:
    output_dir = Path(args.output_dir) if args.output_dir else settings.output_directory
    formats = args.formats or ["json", "md"]
    max_concurrency = args.max_concurrency or settings.max_concurrent_extractions
    timeout = args.timeout or settings.extraction_timeout_seconds

    if not settings.has_api_key:
        logger.warning("GEMINI_API_KEY is not set; every extraction will fail")

    async with ImageSelection(settings.max_image_size_mb) as selection:
        await selection.add_paths(expand_inputs(args.paths))
        if selection.form_error:
            print(selection.form_error, file=sys.stderr)

        uploads = selection.take()
        if not uploads:
            print(selection.form_error, file=sys.stderr)
            return EXIT_NOTHING_TO_PROCESS

        with tqdm(total=len(uploads), desc=f"Processing {len(uploads)} invoices", unit="file") as pbar:
            def on_result(result: ProcessedResult) -> None:
                status = "✅" if result.is_successful else "❌"
                pbar.set_postfix_str(f"{status} {result.file.name}")
                pbar.update(1)

            extractor = GeminiInvoiceExtractor(settings)
            async with BatchOrchestrator(
                extractor,
                max_concurrency=max_concurrency,
                timeout_seconds=timeout,
                on_result=on_result
            ) as orchestrator:
                results = await orchestrator.submit(uploads)
                if orchestrator.state.global_error:
                    print(orchestrator.state.global_error, file=sys.stderr)

                for result in results:
                    _report_result(result, output_dir, formats, args.print_format)

    summary = BatchSummary.from_results(results)
    logger.info(f"Total successfully processed files: {summary.succeeded} out of {summary.total}")
    return EXIT_OK if summary.failed == 0 else EXIT_FAILURES


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    logs_folder = Path(args.logs) if args.logs else settings.logs_directory
    setup_logging(logs_folder, verbose=args.verbose)

    start_time = time.time()
    exit_code = asyncio.run(run(args, settings))
    logger.info(f"Total execution time: {time.time() - start_time:.2f} seconds")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
