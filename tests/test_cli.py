"""Tests for order-up CLI helpers."""
import logging
import os
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from order_uploader import cli
from order_uploader.cli import (
    CLIError,
    _build_config,
    _build_parser,
    _collect_files,
    _load_env_file,
    _parse_options,
    _setup_logging,
    run_cli,
)

ENDPOINT = "https://script.example.com/macros/s/abc/exec"
ENV_KEYS = (
    "ORDER_UPLOADER_ENDPOINT",
    "APPS_SCRIPT_WEB_APP_URL",
    "ORDER_UPLOADER_CEILING",
    "ORDER_UPLOADER_MAX_FILES",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    httpx_level = logging.getLogger("httpx").level
    yield
    logging.disable(logging.NOTSET)
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("httpx").setLevel(httpx_level)
    # _load_env_file writes os.environ directly
    for key in ENV_KEYS:
        os.environ.pop(key, None)


def test_parse_options():
    assert _parse_options(None) is None
    assert _parse_options(["format=A4", "color='B&W'", "copies = 2"]) == {
        "format": "A4",
        "color": "B&W",
        "copies": "2",
    }


@pytest.mark.parametrize("pair", ["format", "=A4"])
def test_parse_options_rejects_bad_pairs(pair):
    with pytest.raises(CLIError):
        _parse_options([pair])


def test_load_env_file(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "# ingestion",
                f"ORDER_UPLOADER_ENDPOINT='{ENDPOINT}'",
                "export ORDER_UPLOADER_CEILING=1048576",
                "not a setting",
            ]
        ),
        encoding="utf-8",
    )

    _load_env_file(env_path)

    assert os.environ["ORDER_UPLOADER_ENDPOINT"] == ENDPOINT
    assert os.environ["ORDER_UPLOADER_CEILING"] == "1048576"


def test_load_env_file_keeps_existing_values(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text("ORDER_UPLOADER_MAX_FILES=3\n", encoding="utf-8")
    monkeypatch.setenv("ORDER_UPLOADER_MAX_FILES", "7")

    _load_env_file(env_path)
    assert os.environ["ORDER_UPLOADER_MAX_FILES"] == "7"

    _load_env_file(env_path, override=True)
    assert os.environ["ORDER_UPLOADER_MAX_FILES"] == "3"


def test_load_env_file_missing(tmp_path):
    with pytest.raises(CLIError, match="not found"):
        _load_env_file(tmp_path / "nope.env")


def test_build_config_from_env(monkeypatch):
    monkeypatch.setenv("APPS_SCRIPT_WEB_APP_URL", ENDPOINT)
    monkeypatch.setenv("ORDER_UPLOADER_CEILING", "1000000")
    config = _build_config(_build_parser().parse_args(["a.pdf"]))
    assert config.endpoint_url == ENDPOINT
    assert config.ceiling == 1_000_000
    assert config.max_files == 10


def test_build_config_flags_win(monkeypatch):
    monkeypatch.setenv("ORDER_UPLOADER_ENDPOINT", "https://env.example.com")
    monkeypatch.setenv("ORDER_UPLOADER_MAX_FILES", "3")
    args = _build_parser().parse_args(["a.pdf", "--endpoint", ENDPOINT, "--max-files", "5"])
    config = _build_config(args)
    assert config.endpoint_url == ENDPOINT
    assert config.max_files == 5


def test_build_config_requires_endpoint():
    with pytest.raises(CLIError, match="endpoint"):
        _build_config(_build_parser().parse_args(["a.pdf"]))


def test_build_config_rejects_bad_number(monkeypatch):
    monkeypatch.setenv("ORDER_UPLOADER_ENDPOINT", ENDPOINT)
    monkeypatch.setenv("ORDER_UPLOADER_CEILING", "lots")
    with pytest.raises(CLIError, match="ORDER_UPLOADER_CEILING"):
        _build_config(_build_parser().parse_args(["a.pdf"]))


def test_collect_files(tmp_path):
    doc = tmp_path / "doc.pdf"
    doc.write_bytes(b"%PDF")
    pay = tmp_path / "pay.png"
    pay.write_bytes(b"png")

    files = _collect_files([doc], pay, {"format": "A4"})

    assert [f.name for f in files] == ["doc.pdf", "pay.png"]
    assert files[0].options == {"format": "A4"}
    assert files[1].is_payment_screenshot is True
    assert files[1].options is None

    with pytest.raises(CLIError):
        _collect_files([tmp_path / "missing.pdf"], None, None)


def test_setup_logging_silent_by_default():
    assert _setup_logging(debug=False, silent=False, log_level=None) == "silent"
    assert logging.getLogger().handlers == []


def test_setup_logging_debug():
    assert _setup_logging(debug=True, silent=False, log_level=None) == "DEBUG"
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_env_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert _setup_logging(debug=False, silent=False, log_level=None) == "WARNING"


def test_setup_logging_silent_wins():
    assert _setup_logging(debug=True, silent=True, log_level=None) == "silent"


def test_run_cli_without_files_prints_help(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert run_cli([]) == cli.EXIT_OK
    assert "order-up" in capsys.readouterr().out


def test_run_cli_requires_total_and_vpa(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    doc = tmp_path / "doc.pdf"
    doc.write_bytes(b"%PDF")

    assert run_cli([str(doc), "--endpoint", ENDPOINT]) == cli.EXIT_ERROR
    assert "--total and --vpa" in capsys.readouterr().err


def test_run_cli_upload(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    doc = tmp_path / "doc.pdf"
    doc.write_bytes(b"%PDF")
    pay = tmp_path / "pay.png"
    pay.write_bytes(b"png")

    run_upload = AsyncMock(return_value=cli.EXIT_PARTIAL)
    monkeypatch.setattr(cli, "_run_upload", run_upload)

    code = run_cli([
        str(doc),
        "-p", str(pay),
        "--endpoint", ENDPOINT,
        "--total", "250",
        "--vpa", "shop@upi",
        "--order-id", "77777",
        "-o", "format=A4",
    ])

    assert code == cli.EXIT_PARTIAL
    config, files, order = run_upload.await_args.args
    assert config.endpoint_url == ENDPOINT
    assert order.order_id == "77777"
    assert order.total == 250.0
    assert [f.name for f in files] == ["doc.pdf", "pay.png"]
    assert files[1].is_payment_screenshot is True
    assert files[0].options == {"format": "A4"}


def test_run_cli_reads_default_env_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    Path(".env").write_text(f"ORDER_UPLOADER_ENDPOINT={ENDPOINT}\n", encoding="utf-8")
    run_health = AsyncMock(return_value=cli.EXIT_OK)
    monkeypatch.setattr(cli, "_run_health", run_health)

    assert run_cli(["--health"]) == cli.EXIT_OK
    assert run_health.await_args.args[0].endpoint_url == ENDPOINT


def test_run_cli_keyboard_interrupt(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "_run_health", AsyncMock(side_effect=KeyboardInterrupt))
    assert run_cli(["--health", "--endpoint", ENDPOINT]) == cli.EXIT_CANCELLED
