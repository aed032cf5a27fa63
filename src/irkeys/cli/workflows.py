"""Command implementations for the irkeys CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Optional

from irkeys.cli.errors import CliError, handler_config_error, pattern_file_error
from irkeys.cli.io import DEFAULT_PATTERN_FILE, load_capture
from irkeys.config.loader import (
    build_decoder_settings,
    build_handler_chain,
    build_match_settings,
    load_handler_config,
)
from irkeys.ingestion.messages import MessageError, RawSignalMessage, parse_message
from irkeys.ingestion.udp import AsyncControllerUDPServer
from irkeys.io.patterns import PatternFileRepository
from irkeys_core.decoder import PulseDecoder
from irkeys_core.dispatch import ActionDescriptor, Dispatcher
from irkeys_core.engine import RemoteControlEngine
from irkeys_core.errors import ConfigurationError
from irkeys_core.session import LoopScheduler, Scheduler, SessionBuffer

__all__ = [
    "build_engine",
    "_handle_decode",
    "_handle_learn",
    "_handle_listen",
    "_handle_patterns",
]


logger = logging.getLogger(__name__)


def build_engine(
    handler_config: Mapping[str, Any],
    repository: PatternFileRepository,
    *,
    dispatcher: Dispatcher | None = None,
    scheduler: Scheduler | None = None,
) -> RemoteControlEngine:
    """Assemble an engine from a handler configuration and pattern file."""

    library = repository.load(build_match_settings(handler_config))
    decoder = PulseDecoder(library, settings=build_decoder_settings(handler_config))
    buffer = SessionBuffer(
        build_handler_chain(handler_config),
        dispatcher or Dispatcher(),
        scheduler or LoopScheduler(),
    )
    return RemoteControlEngine(decoder, buffer, repository=repository)


def _pattern_repository(namespace: argparse.Namespace) -> PatternFileRepository:
    return PatternFileRepository(getattr(namespace, "patterns_path", None) or DEFAULT_PATTERN_FILE)


def _load_engine(
    namespace: argparse.Namespace,
    *,
    dispatcher: Dispatcher | None = None,
) -> RemoteControlEngine:
    handlers_path: Optional[Path] = getattr(namespace, "handlers_path", None)
    try:
        handler_config = load_handler_config(handlers_path)
    except (TypeError, ValueError, FileNotFoundError) as exc:
        raise handler_config_error(handlers_path, exc) from exc

    repository = _pattern_repository(namespace)
    try:
        return build_engine(handler_config, repository, dispatcher=dispatcher)
    except ConfigurationError as exc:
        raise handler_config_error(handlers_path, exc) from exc
    except (KeyError, ValueError) as exc:
        raise pattern_file_error(repository.path, exc) from exc


def _capture_message(source: Path) -> RawSignalMessage:
    try:
        message = parse_message(load_capture(source))
    except MessageError as exc:
        raise CliError(str(exc), category="usage", subject="capture", path=source) from exc
    assert isinstance(message, RawSignalMessage)
    return message


def _handle_decode(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    engine = _load_engine(namespace)
    message = _capture_message(namespace.capture)
    decoded = engine.decoder.decode(message.periods, controller_id="cli", timeseq=message.timeseq)
    capture = engine.get_last_capture()
    assert capture is not None
    payload = {
        "noise": decoded is None,
        "recognized": bool(decoded and decoded.recognized),
        "remote": decoded.remote if decoded else "",
        "key": decoded.key if decoded else "",
        "periods": len(capture.periods),
    }
    return json.dumps(payload, sort_keys=True)


def _handle_learn(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    engine = _load_engine(namespace)
    message = _capture_message(namespace.capture)
    engine.decoder.decode(message.periods, controller_id="cli", timeseq=message.timeseq)
    try:
        pattern = engine.assign_name(namespace.remote, namespace.key)
    except (LookupError, ValueError) as exc:
        raise CliError(
            f"Cannot learn {namespace.remote}:{namespace.key}: {exc}",
            category="usage",
            subject="capture",
            path=namespace.capture,
        ) from exc
    except OSError as exc:
        raise CliError(
            f"Unable to write pattern file: {exc}",
            category="io",
            subject="patterns",
            path=_pattern_repository(namespace).path,
        ) from exc
    return f"Learned {pattern.identity} ({len(pattern.periods)} periods)"


def _handle_patterns(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    repository = _pattern_repository(namespace)
    try:
        library = repository.load()
    except (KeyError, ValueError) as exc:
        raise pattern_file_error(repository.path, exc) from exc
    if namespace.format == "json":
        return json.dumps(library.records(), indent=2)
    lines = [f"{pattern.identity}\t{len(pattern.periods)} periods" for pattern in library]
    if not lines:
        return f"No patterns stored in {repository.path}"
    return "\n".join(lines)


def _emit_action(action: ActionDescriptor) -> None:
    record = {
        "action": action.name,
        "remote": action.remote_id,
        "keys": list(action.keys),
        "value": action.value,
        "label": action.label,
        "controller": action.controller_id,
    }
    sys.stdout.write(json.dumps(record) + "\n")
    sys.stdout.flush()


def _log_feedback(remote_id: str, label: str, duration_ms: int) -> None:
    logger.info(
        "Feedback requested.",
        extra={
            "event": "listen.feedback",
            "remote": remote_id,
            "label": label,
            "duration_ms": duration_ms,
        },
    )


async def _listen(
    engine: RemoteControlEngine,
    host: str,
    port: int,
    duration: Optional[float],
) -> None:
    server = await AsyncControllerUDPServer.create(engine, host=host, port=port)
    try:
        if duration is None:
            await server.serve_forever()
        else:
            await asyncio.sleep(duration)
    finally:
        await server.close()


def _handle_listen(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    dispatcher = Dispatcher(on_action=_emit_action, on_feedback=_log_feedback)
    engine = _load_engine(namespace, dispatcher=dispatcher)
    try:
        asyncio.run(_listen(engine, namespace.host, namespace.port, namespace.duration))
    except OSError as exc:
        raise CliError(
            f"Unable to listen on {namespace.host}:{namespace.port}: {exc}",
            category="io",
            subject="listener",
        ) from exc
    except KeyboardInterrupt:
        logger.info("Listener interrupted.", extra={"event": "listen.stopped"})
    return ""
