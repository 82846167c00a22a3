# src/pageocr/cli.py
from __future__ import annotations

import argparse
import ast
import asyncio
import json
import logging
import re
import sys
from pathlib import Path
from queue import Queue
from typing import List, Optional

from tqdm import tqdm

from .config import OCRConfig
from .exceptions import InputValidationError, PageOCRError
from .jobs import JobRunner, JobStatus
from .languages import DEFAULT_LANGUAGE, get_language_name, get_supported_languages
from .logger import setup_logging
from .models import ProcessingOptions, SourceDocument
from .ocr_backends import load_engine_class, normalize_backend_alias
from .orchestrator import build_processor
from .page_selection import PageSelectionService, parse_page_spec
from .progress import ProgressChannel
from .utils import default_output_path, write_json_file, write_text_file

__all__ = ["main"]

logger = logging.getLogger("pageocr")

# Helper

def _parse_backend_kwargs(val) -> dict:
    """
    Accept several syntaxes for --ocr-backend-kwargs:
      1) JSON (double quotes)                      {"psm": 6, "oem": 1}
      2) JSON wrapped in single quotes             '{"psm": 6}'
      3) Python-literal dict with single quotes    {'gpu': False}
      4) key=value pairs separated by , or ;       psm=6;oem=1
    """
    if isinstance(val, dict):
        return dict(val)
    if not isinstance(val, str):
        return {}

    s = val.strip()
    if not s:
        return {}
    # Strip outer quotes like '"{...}"' or "'{...}'"
    if len(s) >= 2 and s[0] in ("'", '"') and s[-1] == s[0]:
        s = s[1:-1].strip()

    # Try strict JSON
    try:
        parsed = json.loads(s)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    # Try Python literal dict
    try:
        lit = ast.literal_eval(s)
        if isinstance(lit, dict):
            return lit
    except (ValueError, SyntaxError):
        pass

    # Fallback: key=value pairs
    out: dict = {}
    for part in re.split(r"[;,]\s*", s):
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        k = k.strip().strip('"\'').lstrip("{").strip()
        v = v.strip().strip('"\'').rstrip("}").strip()

        low = v.lower()
        if low in ("true", "false"):
            v = (low == "true")
        elif re.fullmatch(r"-?\d+", v):
            v = int(v)
        elif re.fullmatch(r"-?\d+\.\d*", v):
            v = float(v)
        out[k.replace("-", "_")] = v

    if out:
        return out

    raise SystemExit(f"Invalid --ocr-backend-kwargs. Could not parse: {val!r}")


def _preflight_backend_import(dotted: str) -> None:
    """
    Import the backend class now so a typo fails with a clear message instead
    of an engine initialization error halfway through a document.
    """
    try:
        load_engine_class(dotted)
    except ImportError as e:
        raise SystemExit(
            f"Cannot load OCR backend {dotted!r} ({e})\n"
            f"- Tesseract: pageocr.ocr_backends.tesseract_backend.TesseractOCREngine (alias: tesseract)\n"
            f"- EasyOCR:   pageocr.ocr_backends.easyocr_backend.EasyOCREngine (alias: easyocr, "
            f"needs `pip install pageocr[easyocr]`)"
        )


def _parse_crop(val: Optional[str]) -> Optional[dict]:
    if not val:
        return None
    parts = [p.strip() for p in val.split(",")]
    if len(parts) != 4 or not all(re.fullmatch(r"\d+", p) for p in parts):
        raise SystemExit(f"--crop must be x,y,width,height in pixels, got: {val!r}")
    x, y, w, h = (int(p) for p in parts)
    return {"x": x, "y": y, "width": w, "height": h}


def _parse_pages(val: Optional[str]) -> Optional[List[int]]:
    if val is None:
        return None
    try:
        pages = parse_page_spec(val)
    except ValueError as e:
        raise SystemExit(f"--pages: {e}")
    if not pages:
        raise SystemExit("--pages selects no pages")
    return pages


# -------------------------------
# Commands
# -------------------------------

async def _follow_progress(channel: ProgressChannel, bar: tqdm) -> None:
    async for event in channel:
        bar.set_description(event.status)
        bar.update(event.percent - bar.n)


async def _extract(config: OCRConfig, document: SourceDocument, options: ProcessingOptions,
                   pages: Optional[List[int]], show_progress: bool):
    processor = build_processor(config)
    runner = JobRunner(processor, error_log_path=config.error_log_path)
    channel = ProgressChannel()

    with tqdm(total=100, desc="Pending", disable=not show_progress, unit="%") as bar:
        follower = asyncio.ensure_future(_follow_progress(channel, bar))
        try:
            outcome = await runner.run(
                document,
                language=config.language,
                options=options,
                selected_pages=pages,
                progress=channel,
            )
        finally:
            await follower
            await processor.close()
    return outcome


def _run_extract(args: argparse.Namespace) -> int:
    if not args.input.exists():
        raise SystemExit(f"Input file does not exist: {args.input}")

    args.ocr_backend = normalize_backend_alias(args.ocr_backend)
    _preflight_backend_import(args.ocr_backend)

    log_queue: Queue = Queue(-1)
    listener = setup_logging(
        log_queue,
        console=not args.quiet,
        level=logging.DEBUG if args.verbose else logging.INFO,
        file_path=args.log_file,
    )
    listener.start()

    try:
        cfg_dict = {
            "language": args.language,
            "max_concurrent": args.max_concurrent,
            "render_scale": args.scale,
            "ocr_backend": args.ocr_backend,
            "ocr_backend_kwargs": _parse_backend_kwargs(args.ocr_backend_kwargs),
            "error_log_path": args.error_log_path,
            "log_file_path": args.log_file,
        }
        cfg_dict = {k: v for k, v in cfg_dict.items() if v is not None}
        try:
            config = OCRConfig.from_dict(cfg_dict)
            options = ProcessingOptions.from_dict({
                k: v for k, v in {
                    "brightness": args.brightness,
                    "contrast": args.contrast,
                    "rotation": args.rotation,
                    "crop": _parse_crop(args.crop),
                }.items() if v is not None
            })
        except (ValueError, InputValidationError) as e:
            raise SystemExit(str(e))

        pages = _parse_pages(args.pages)
        document = SourceDocument(args.input)

        outcome = asyncio.run(_extract(config, document, options, pages, not args.quiet))
        job, result = outcome.job, outcome.result

        if job.status is not JobStatus.COMPLETED:
            print(f"{job.status.value}: {job.error_message}", file=sys.stderr)
            return 1

        if result.is_partial:
            logger.warning(
                "Pages %s could not be read", ", ".join(str(f.page_number) for f in result.failures)
            )

        if args.json:
            payload = {"job": job.to_dict(), "result": result.summary(), "text": result.text}
            out_path = args.output or default_output_path(args.input, ".json")
            write_json_file(out_path, payload)
        elif args.output is None and args.stdout:
            sys.stdout.write(result.text + "\n")
            return 0
        else:
            write_text_file(args.output or default_output_path(args.input), result.text)

        logger.info(
            "Extracted %d page(s) from %s via %s, confidence %d%%",
            result.page_count, document.name, result.strategy.value, result.confidence,
        )
        return 0
    except PageOCRError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        listener.stop()


def _run_select(args: argparse.Namespace) -> int:
    if not args.input.exists():
        raise SystemExit(f"Input file does not exist: {args.input}")
    pages = _parse_pages(args.pages)
    text = args.input.read_text(encoding="utf-8")

    service = PageSelectionService()
    try:
        service.require_valid_selection(text, pages)
    except InputValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    selection = service.extract_selected_pages(text, pages)
    if args.output:
        write_text_file(args.output, selection.combined_text)
    else:
        sys.stdout.write(selection.combined_text + "\n")
    print(
        f"Pages {selection.page_range}: {selection.total_word_count} words, "
        f"{selection.total_character_count} chars "
        f"(document has {selection.original_document_stats.total_pages} pages)",
        file=sys.stderr,
    )
    return 0


def _run_languages(args: argparse.Namespace) -> int:
    for code in get_supported_languages():
        print(f"{code}\t{get_language_name(code)}")
    return 0


# -------------------------------
# CLI parsing
# -------------------------------

def _build_extract_parser(subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
    p = subparsers.add_parser("extract", help="Extract text from a PDF or image")
    p.add_argument("-i", "--input", type=Path, required=True, help="PDF or image file")
    p.add_argument(
        "-o", "--output", type=Path,
        help="Output path. Defaults to <input>.ocr.txt (or .json with --json) next to the input.",
    )
    p.add_argument("--stdout", action="store_true", help="Print the packed text instead of writing a file")
    p.add_argument("--json", action="store_true", help="Write job record, summary and text as JSON")
    p.add_argument("-l", "--language", default=DEFAULT_LANGUAGE, help="Tesseract language code, e.g. eng or eng+fra")
    p.add_argument("--pages", help='Pages to extract, e.g. "1-3, 5". Defaults to every page.')

    pre = p.add_argument_group("Preprocessing")
    pre.add_argument("--brightness", type=float, help="-100..100")
    pre.add_argument("--contrast", type=float, help="-100..100")
    pre.add_argument("--rotation", type=float, help="Clockwise degrees")
    pre.add_argument("--crop", help="x,y,width,height in pixels")

    perf = p.add_argument_group("Runtime")
    perf.add_argument("--scale", type=float, help="Render zoom for scanned PDF pages (default 2.0)")
    perf.add_argument("--max-concurrent", type=int, help="Recognitions in flight (default 2)")
    perf.add_argument(
        "--ocr-backend",
        type=str,
        default="tesseract",
        help="Alias (tesseract, easyocr) or dotted path to an OCR backend class",
    )
    perf.add_argument(
        "--ocr-backend-kwargs",
        type=str,
        default="{}",
        help='Backend init kwargs as JSON or key=value pairs, e.g. \'{"psm": 6}\' or psm=6;oem=1',
    )

    logs = p.add_argument_group("Logging")
    logs.add_argument("--log-file", type=Path, help="Rotating log file")
    logs.add_argument("--error-log-path", type=Path, help="Append failed jobs to this JSONL file")
    logs.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    logs.add_argument("-q", "--quiet", action="store_true", help="No console logs or progress bar")
    return p


def _build_select_parser(subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
    p = subparsers.add_parser("select", help="Cut pages out of previously extracted text")
    p.add_argument("-i", "--input", type=Path, required=True, help="Text file with page markers")
    p.add_argument("--pages", required=True, help='Pages to keep, e.g. "1-3, 5"')
    p.add_argument("-o", "--output", type=Path, help="Write the selection here instead of stdout")
    return p


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="pageocr: PDF and image text extraction")
    subparsers = parser.add_subparsers(dest="command")

    _build_extract_parser(subparsers)
    _build_select_parser(subparsers)
    subparsers.add_parser("languages", help="List supported recognition languages")

    return parser.parse_args(argv)


# -------------------------------
# Entry points
# -------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    if args.command == "extract":
        return _run_extract(args)
    if args.command == "select":
        return _run_select(args)
    if args.command == "languages":
        return _run_languages(args)

    print("Usage:\n  pageocr extract -i <file> [-o <out>] [options]\n"
          "  pageocr select -i <packed.txt> --pages 1-3,5\n  pageocr languages")
    return 2


if __name__ == "__main__":
    sys.exit(main())
