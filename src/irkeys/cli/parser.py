"""Argument parsing for the irkeys CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Mapping, Optional

from irkeys.cli.io import DEFAULT_PATTERN_FILE
from irkeys.cli.workflows import _handle_decode, _handle_learn, _handle_listen, _handle_patterns
from irkeys.ingestion.udp import DEFAULT_PORT


def _optional_path(value: Any) -> Optional[Path]:
    if value in (None, ""):
        return None
    return Path(str(value))


def _add_storage_arguments(parser: argparse.ArgumentParser, config: Mapping[str, Any]) -> None:
    parser.add_argument(
        "--patterns",
        dest="patterns_path",
        type=Path,
        default=_optional_path(config.get("patterns")) or Path(DEFAULT_PATTERN_FILE),
        help="JSON file holding the learned pulse patterns.",
    )
    parser.add_argument(
        "--handlers",
        dest="handlers_path",
        type=Path,
        default=_optional_path(config.get("handlers")),
        help="YAML handler configuration (default: the bundled configuration).",
    )


def build_parser(config: Optional[Mapping[str, Any]] = None) -> argparse.ArgumentParser:
    config = dict(config or {})
    logging_cfg = dict(config.get("logging", {}))
    listen_cfg_raw = config.get("listen", {})
    listen_cfg = dict(listen_cfg_raw) if isinstance(listen_cfg_raw, Mapping) else {}

    parser = argparse.ArgumentParser(
        description="irkeys: IR remote-control key recognition and command dispatch"
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        type=Path,
        default=None,
        help="Path to the pyproject.toml holding a [tool.irkeys] table.",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=logging_cfg.get("level", "info"),
        help="Logging level (e.g. debug, info, warning).",
    )
    parser.add_argument(
        "--log-output",
        dest="log_output",
        default=logging_cfg.get("output", "stderr"),
        help="Logging destination (stdout, stderr or a file path).",
    )
    parser.add_argument(
        "--log-format",
        dest="log_format",
        choices=("json", "text"),
        default=logging_cfg.get("format", "json"),
        help="Logging formatter (json or text).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    listen_parser = subparsers.add_parser(
        "listen",
        help="Receive controller datagrams and dispatch recognised key sequences.",
    )
    _add_storage_arguments(listen_parser, config)
    listen_parser.add_argument(
        "--host",
        default=str(listen_cfg.get("host", "0.0.0.0")),
        help="Address to bind the UDP listener to.",
    )
    listen_parser.add_argument(
        "--port",
        type=int,
        default=int(listen_cfg.get("port", DEFAULT_PORT)),
        help=f"UDP port controllers send to (default: {DEFAULT_PORT}).",
    )
    listen_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds instead of running until interrupted.",
    )
    listen_parser.set_defaults(handler=_handle_listen)

    decode_parser = subparsers.add_parser(
        "decode",
        help="Decode a captured burst against the stored patterns.",
    )
    decode_parser.add_argument("capture", type=Path, help="JSON file with the captured periods.")
    _add_storage_arguments(decode_parser, config)
    decode_parser.set_defaults(handler=_handle_decode)

    learn_parser = subparsers.add_parser(
        "learn",
        help="Store a captured burst under a remote and key name.",
    )
    learn_parser.add_argument("capture", type=Path, help="JSON file with the captured periods.")
    learn_parser.add_argument("--remote", required=True, help="Remote the key belongs to.")
    learn_parser.add_argument("--key", required=True, help="Name of the key.")
    _add_storage_arguments(learn_parser, config)
    learn_parser.set_defaults(handler=_handle_learn)

    patterns_parser = subparsers.add_parser("patterns", help="List the stored patterns.")
    _add_storage_arguments(patterns_parser, config)
    patterns_parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text).",
    )
    patterns_parser.set_defaults(handler=_handle_patterns)

    return parser
