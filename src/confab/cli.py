"""Command-line glue around the session engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence, TextIO

from .ai.client import ClientSettings, MessagesClient
from .ai.decoder import DecodedChunk
from .ai.session import ChatSession
from .ai.tokens import DEFAULT_COMPLETION_PRIMING, DEFAULT_MESSAGE_OVERHEAD, TokenEstimator
from .chat.history import History
from .errors import MalformedTranscriptError, TransportError
from .scanner.markup import SpanKind, scan
from .services.settings import Settings, SettingsStore
from .utils.logging import redact_secret, setup_logging

LOGGER = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    store = SettingsStore(args.settings)
    settings = store.load()
    verbose = args.verbose or settings.debug_logging
    setup_logging(
        logging.DEBUG if verbose else logging.WARNING,
        console=args.verbose,
        secrets=(settings.api_key,),
    )
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args, store, settings)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="confab", description="Chat session engine utilities.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output to the console.")
    parser.add_argument("--settings", type=Path, help="Settings file to load instead of ~/.confab/settings.json.")
    commands = parser.add_subparsers(dest="command")

    scan_parser = commands.add_parser("scan", help="Print markup spans found in a file as JSON lines.")
    scan_parser.add_argument("file", type=Path)
    scan_parser.add_argument(
        "--kind",
        action="append",
        choices=[kind.value for kind in SpanKind],
        help="Restrict output to these span kinds (repeatable).",
    )
    scan_parser.set_defaults(handler=_cmd_scan)

    restore_parser = commands.add_parser("restore", help="Validate a transcript and summarize its turns.")
    restore_parser.add_argument("file", type=Path)
    restore_parser.set_defaults(handler=_cmd_restore)

    tokens_parser = commands.add_parser("tokens", help="Estimate the token cost of a transcript.")
    tokens_parser.add_argument("file", type=Path)
    tokens_parser.add_argument("--overhead", type=int, default=DEFAULT_MESSAGE_OVERHEAD, help="Per-message overhead.")
    tokens_parser.add_argument(
        "--priming", type=int, default=DEFAULT_COMPLETION_PRIMING, help="Completion priming allowance."
    )
    tokens_parser.add_argument("--budget", type=int, help="Show how many messages survive this token budget.")
    tokens_parser.set_defaults(handler=_cmd_tokens)

    ask_parser = commands.add_parser("ask", help="Send a prompt and stream the reply.")
    ask_parser.add_argument("prompt")
    ask_parser.add_argument("--transcript", type=Path, help="Transcript to restore first and update afterwards.")
    ask_parser.add_argument("--model", help="Override the configured model.")
    ask_parser.add_argument("--no-stream", action="store_true", help="Request a single-shot response.")
    ask_parser.set_defaults(handler=_cmd_ask)

    settings_parser = commands.add_parser("settings", help="Print the effective settings with secrets redacted.")
    settings_parser.set_defaults(handler=_cmd_settings)
    return parser


def _cmd_scan(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> int:
    text = _read(args.file)
    kinds = args.kind or [kind.value for kind in SpanKind]
    for span in scan(text, kinds):
        print(json.dumps(span.as_payload()))
    return 0


def _cmd_restore(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> int:
    try:
        history = History.from_transcript(_read(args.file), format=settings.transcript_format())
    except MalformedTranscriptError as exc:
        print(f"{args.file}: {exc}", file=sys.stderr)
        return 2
    print(f"turns: {len(history)}")
    print(f"messages: {len(history.to_messages())}")
    print(f"awaiting reply: {'yes' if history.open_turn is not None else 'no'}")
    return 0


def _cmd_tokens(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> int:
    try:
        history = History.from_transcript(_read(args.file), format=settings.transcript_format())
        estimator = TokenEstimator(message_overhead=args.overhead, completion_priming=args.priming)
    except (MalformedTranscriptError, ValueError) as exc:
        print(f"{args.file}: {exc}", file=sys.stderr)
        return 2
    messages = history.to_messages()
    print(f"messages: {len(messages)}")
    print(f"estimate: {estimator.estimate(messages)}")
    if args.budget is not None:
        kept = estimator.trim(messages, args.budget)
        print(f"kept within {args.budget}: {len(kept)}")
    return 0


def _cmd_ask(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> int:
    overrides: dict[str, Any] = {"model": args.model}
    if args.no_stream:
        overrides["streaming"] = False
    settings = store.load(overrides=overrides)
    transcript_format = settings.transcript_format()
    transcript_path: Path | None = args.transcript
    history = History()
    if transcript_path is not None and transcript_path.exists():
        restored = ChatSession(settings.session_config())
        try:
            restored.restore(_read(transcript_path), format=transcript_format)
        except MalformedTranscriptError as exc:
            print(f"{transcript_path}: {exc}", file=sys.stderr)
            return 2
        history = restored.history

    session = ChatSession(settings.session_config(), history=history, on_chunk=_print_chunk)
    try:
        asyncio.run(_exchange(session, args.prompt, settings.client_settings()))
    except TransportError as exc:
        print(f"\nrequest failed: {exc}", file=sys.stderr)
        return 1
    print()
    if transcript_path is not None:
        transcript_path.write_text(session.history.to_transcript(transcript_format), encoding="utf-8")
        LOGGER.debug("Transcript written to %s", transcript_path)
    return 0


def _cmd_settings(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> int:
    _dump_settings(settings, store)
    return 0


async def _exchange(session: ChatSession, prompt: str, client_settings: ClientSettings) -> str:
    async with MessagesClient(client_settings) as client:
        return await session.aexchange(prompt, client.responses)


def _dump_settings(settings: Settings, store: SettingsStore, *, stream: TextIO | None = None) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    output = {
        "settings": payload,
        "meta": {
            "path": str(store.path),
            "exists": store.path.exists(),
            "environment_variables": sorted(name for name in os.environ if name.startswith("CONFAB_")),
        },
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _print_chunk(chunk: DecodedChunk) -> None:
    if chunk.text:
        sys.stdout.write(chunk.text)
        sys.stdout.flush()


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
