"""Command line entry-point for the Brief Buddy assistant."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .assistant import BriefAssistant
from .config import AppSettings
from .observability import initialize_tracing
from .seeding import SeedAnalyzer, guess_mime_type
from .server import build_assistant, build_parser, run_server
from .sessions import Attachment, BriefSession
from .signals import strip_markers

ATTACH_COMMAND = "/adjuntar"
RESET_COMMAND = "/reiniciar"
EXIT_COMMANDS = {"/salir", "exit", "quit"}


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="brief-buddy",
        description=(
            "Guide a client through a creative brief, one section at a time. "
            "Use `brief-buddy serve` to run the HTTP service."
        ),
    )
    parser.add_argument(
        "--max-turns",
        type=int,
        help="Turns of history sent to the model. Overrides BRIEF_MAX_TURNS.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug output to stderr.",
    )
    return parser.parse_args(argv)


async def _reply(
    assistant: BriefAssistant,
    session: BriefSession,
    message: Optional[str] = None,
) -> None:
    fragments: List[str] = []
    notices: List[str] = []
    async for event in assistant.stream_reply(session, message):
        kind = event.get("type")
        if kind == "delta":
            fragments.append(str(event.get("text", "")))
        elif kind == "error":
            notices.append(str(event.get("message", "")))
        elif kind == "finalized":
            result = event.get("result") or {}
            folder = result.get("projectFolder") or {}
            notices.append(
                f"Brief guardado en Drive: {result.get('label', '')} "
                f"{folder.get('link') or ''}".strip()
            )
    reply = strip_markers("".join(fragments))
    print()  # noqa: T201 - CLI UX newline
    if reply:
        print(f"Brief Buddy: {reply}")  # noqa: T201 - CLI output
    for notice in notices:
        print(f"  ({notice})")  # noqa: T201


async def _attach(
    assistant: BriefAssistant,
    session: BriefSession,
    raw_path: str,
) -> bool:
    path = Path(raw_path.strip().strip('"')).expanduser()
    if not path.is_file():
        print(f"No encuentro el archivo: {path}")  # noqa: T201
        return False
    attachment = Attachment(
        filename=path.name,
        mime_type=guess_mime_type(path.name),
        data=path.read_bytes(),
    )
    session.attach(attachment)
    print(f"Analizando {path.name}…")  # noqa: T201
    result = await SeedAnalyzer(assistant.chat_client).analyze(attachment)
    preview = session.ingest_seed(result.brief)
    print()  # noqa: T201
    print(preview)  # noqa: T201
    return True


async def run_chat(assistant: BriefAssistant) -> None:
    """Interactive terminal conversation for a single brief."""

    session = BriefSession()
    print(  # noqa: T201
        f"Comandos: {ATTACH_COMMAND} <ruta>, {RESET_COMMAND}, /salir"
    )
    await _reply(assistant, session)
    while True:
        try:
            answer = input("\nTú: ")  # noqa: PLW1514 - intentional CLI input
        except EOFError:
            break
        text = answer.strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break
        if text.lower() == RESET_COMMAND:
            session.reset()
            await _reply(assistant, session)
            continue
        if text.lower().startswith(ATTACH_COMMAND):
            if await _attach(assistant, session, text[len(ATTACH_COMMAND):]):
                await _reply(assistant, session)
            continue
        await _reply(assistant, session, text)

    if session.finalize_result is not None:
        print(  # noqa: T201
            f"Brief finalizado: {session.finalize_result.label}"
        )


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Entry-point invoked from ``python -m brief_buddy``."""

    arg_list = list(argv) if argv is not None else sys.argv[1:]
    if arg_list and arg_list[0] == "serve":
        logging.basicConfig(level=logging.INFO)
        args = build_parser(prog="brief-buddy serve").parse_args(arg_list[1:])
        settings = AppSettings.load()
        run_server(
            settings,
            host=args.host,
            port=args.port,
            allow_origins=args.allow_origin,
            log_level=args.log_level,
        )
        return

    args = _parse_args(arg_list)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    settings = AppSettings.load()
    if args.max_turns is not None:
        if args.max_turns < 1:
            raise SystemExit("--max-turns must be >= 1")
        settings = replace(settings, max_turns=args.max_turns)
    initialize_tracing(settings.tracing)
    asyncio.run(run_chat(build_assistant(settings)))


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
