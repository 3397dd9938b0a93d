"""Command line interface for order_uploader."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import (
    BatchUploadProgressDisplay,
    human_size,
    render_configuration_summary,
    render_mapping,
)
from .errors import UploaderError
from .models import FileDescriptor, OrderMetadata, UploadConfig, UploadStatus


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2
EXIT_CANCELLED = 130


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level and not os.getenv("LOG_LEVEL")):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    elif log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _parse_options(pairs: Optional[Sequence[str]]) -> Optional[Dict[str, str]]:
    """Turn ``["format=A4", "color=B&W"]`` into a dict."""
    if not pairs:
        return None
    options: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise CLIError(f"invalid --option '{pair}', expected key=value")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise CLIError(f"invalid --option '{pair}', empty key")
        options[key] = _strip_optional_quotes(value.strip())
    return options


def _int_setting(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except ValueError as exc:
        raise CLIError(f"{name} must be a number of bytes, got '{value}'") from exc


def _build_config(args: argparse.Namespace) -> UploadConfig:
    """Flags first, then environment, then UploadConfig defaults."""
    endpoint = (
        args.endpoint
        or os.getenv("ORDER_UPLOADER_ENDPOINT")
        or os.getenv("APPS_SCRIPT_WEB_APP_URL")
    )
    if not endpoint:
        raise CLIError(
            "ingestion endpoint is not configured (use --endpoint or set ORDER_UPLOADER_ENDPOINT)"
        )

    overrides: Dict[str, Any] = {"endpoint_url": endpoint}
    ceiling = args.ceiling if args.ceiling is not None else _int_setting(
        os.getenv("ORDER_UPLOADER_CEILING"), "ORDER_UPLOADER_CEILING"
    )
    if ceiling is not None:
        overrides["ceiling"] = ceiling
    max_files = args.max_files if args.max_files is not None else _int_setting(
        os.getenv("ORDER_UPLOADER_MAX_FILES"), "ORDER_UPLOADER_MAX_FILES"
    )
    if max_files is not None:
        overrides["max_files"] = max_files
    if args.max_file_size is not None:
        overrides["max_file_size"] = args.max_file_size
    if args.max_total_size is not None:
        overrides["max_total_size"] = args.max_total_size

    try:
        return UploadConfig(**overrides)
    except ValueError as exc:
        raise CLIError(str(exc)) from exc


def _collect_files(
    paths: Sequence[Path],
    payment_screenshot: Optional[Path],
    options: Optional[Dict[str, str]],
) -> List[FileDescriptor]:
    descriptors = []
    for path in paths:
        if not path.is_file():
            raise CLIError(f"not a file: {path}")
        descriptors.append(FileDescriptor.from_path(path, options=options))

    if payment_screenshot is not None:
        if not payment_screenshot.is_file():
            raise CLIError(f"payment screenshot not found: {payment_screenshot}")
        descriptors.append(FileDescriptor.from_path(payment_screenshot, is_payment_screenshot=True))
    return descriptors


async def _run_upload(
    config: UploadConfig,
    files: List[FileDescriptor],
    order: OrderMetadata,
) -> int:
    from .orchestrator import BatchUploader

    display = BatchUploadProgressDisplay(total_files=len(files))
    async with BatchUploader(config) as uploader:
        uploader.on_chunk_start(display.on_chunk_start)
        uploader.on_progress(display.on_progress)
        uploader.on_file_error(display.on_file_error)
        uploader.on_error(display.on_error)
        uploader.on_finish(display.on_finish)

        try:
            result = await uploader.upload_batch(files, order)
        except UploaderError as exc:
            partial = exc.partial_result
            if partial is not None and partial.files:
                print(
                    f"NOTE: {partial.uploaded_count} file(s) were already uploaded for order "
                    f"{order.order_id} before the failure; a retry may upload them again.",
                    file=sys.stderr,
                )
            return EXIT_ERROR
        finally:
            display.stop()

    if result.status == UploadStatus.PARTIAL:
        return EXIT_PARTIAL
    return EXIT_OK


async def _run_health(config: UploadConfig) -> int:
    from .orchestrator import BatchUploader

    async with BatchUploader(config) as uploader:
        data = await uploader.health_check()
    render_mapping("Ingestion endpoint", data)
    return EXIT_OK


async def _run_lookup(config: UploadConfig, order_id: str) -> int:
    from .orchestrator import BatchUploader

    async with BatchUploader(config) as uploader:
        order = await uploader.get_order(order_id)
    if order is None:
        print(f"ERROR: order {order_id} not found", file=sys.stderr)
        return EXIT_ERROR
    flat = {
        key: json.dumps(value) if isinstance(value, (dict, list)) else value
        for key, value in order.items()
    }
    render_mapping(f"Order {order_id}", flat)
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="order-up",
        description="Upload an order's files to the ingestion endpoint in size-bounded chunks.",
    )
    parser.add_argument("files", nargs="*", type=Path, help="Files to upload, in order")
    parser.add_argument(
        "-p",
        "--payment-screenshot",
        type=Path,
        default=None,
        help="Payment screenshot uploaded with the order (not counted in --max-files)",
    )
    parser.add_argument("--order-id", default=None, help="Order id (default: random 5 digits)")
    parser.add_argument("--total", type=float, default=None, help="Order total amount")
    parser.add_argument("--vpa", default=None, help="Payer UPI id (VPA)")
    parser.add_argument(
        "-o",
        "--option",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Print option applied to every file (repeatable, e.g. format=A4)",
    )
    parser.add_argument("--endpoint", default=None, help="Ingestion endpoint URL")
    parser.add_argument("--ceiling", type=int, default=None, help="Max request body in bytes")
    parser.add_argument("--max-files", type=int, default=None, help="Max files per order")
    parser.add_argument("--max-file-size", type=int, default=None, help="Max raw bytes per file")
    parser.add_argument("--max-total-size", type=int, default=None, help="Max raw bytes per order")
    parser.add_argument("--health", action="store_true", help="Check the ingestion endpoint and exit")
    parser.add_argument("--lookup", default=None, metavar="ORDER_ID", help="Look up an order and exit")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="order-up (from order_uploader)",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return EXIT_ERROR

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.files and not args.health and not args.lookup:
        parser.print_help()
        return EXIT_OK

    try:
        config = _build_config(args)

        if args.health:
            return asyncio.run(_run_health(config))
        if args.lookup:
            return asyncio.run(_run_lookup(config, args.lookup))

        if args.total is None or args.vpa is None:
            raise CLIError("--total and --vpa are required to upload an order")
        try:
            order = (
                OrderMetadata(order_id=args.order_id, total=args.total, vpa=args.vpa)
                if args.order_id
                else OrderMetadata.create(total=args.total, vpa=args.vpa)
            )
        except ValueError as exc:
            raise CLIError(str(exc)) from exc

        files = _collect_files(
            [Path(f).expanduser() for f in args.files],
            Path(args.payment_screenshot).expanduser() if args.payment_screenshot else None,
            _parse_options(args.option),
        )

        render_configuration_summary(
            {
                "Order": order.order_id,
                "Total": f"{order.total:.2f}",
                "VPA": order.vpa,
                "Files": f"{len(files)} ({human_size(sum(f.size for f in files))})",
                "Endpoint": config.endpoint_url,
                "Ceiling": human_size(config.ceiling),
                "Max Files": config.max_files,
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )

        return asyncio.run(_run_upload(config, files, order))
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except UploaderError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return EXIT_CANCELLED


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
