#!/usr/bin/env python3
"""
VoxTrack - Main CLI

Reads Markdown documents aloud with Microsoft Edge neural voices and keeps
the spoken word highlighted in the terminal.

Features:
- Markdown, code, math and link syntax filtered out before speaking
- Word-level highlighting mapped back to the original document
- Automatic resume after dropped connections
- Optional MP3 and JSON timing map export
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from voxtrack.console_player import ConsoleEditor, RecordingAudioSink
from voxtrack.edge_transport import EDGE_VOICES, EdgeTransport, list_voices
from voxtrack.readalong.document_filter import DocumentFilter, FilterOptions
from voxtrack.readalong.errors import VoxTrackError
from voxtrack.readalong.session import ReadAlongSession, ReadMode, SessionSettings
from voxtrack.readalong.timing_map import TimingMap
from voxtrack.utils import logger
from voxtrack.utils.config import config


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """
    VoxTrack

    Read documents aloud with the spoken word highlighted.
    """
    pass


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("--max-length", type=int, default=None, help="Max characters per chunk")
@click.option("--lang", default=None, help=f"Language for symbol words (default: {config.lang})")
def chunks(input_file: str, max_length: Optional[int], lang: Optional[str]):
    """
    Show the speakable chunks of a document.

    Helps check what filtering keeps before reading aloud.
    """
    input_path = Path(input_file)
    logger.header(f"Filtering: {input_path.name}")

    text = input_path.read_text(encoding="utf-8")
    options = FilterOptions.from_config()
    if max_length is not None:
        options.max_chunk_length = max_length
    if lang:
        options.lang = lang

    try:
        found = DocumentFilter(options).process(text)
    except VoxTrackError as e:
        logger.error(str(e))
        sys.exit(1)

    table = Table(show_lines=True)
    table.add_column("#", justify="right")
    table.add_column("Source", justify="right")
    table.add_column("Chars", justify="right")
    table.add_column("Text")
    for i, chunk in enumerate(found, 1):
        table.add_row(
            str(i),
            f"{chunk.map[0]}-{chunk.map[-1] + 1}",
            f"{len(chunk.text):,}",
            chunk.text if len(chunk.text) <= 300 else chunk.text[:300] + "…",
        )
    logger.console.print(table)
    logger.info(f"{len(text):,} chars -> {sum(len(c.text) for c in found):,} speakable in {len(found)} chunks")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option(
    "-o", "--output",
    type=click.Path(),
    help="Save the spoken audio to this MP3 file",
)
@click.option(
    "-t", "--timing",
    type=click.Path(),
    help="Save a JSON timing map to this file",
)
@click.option(
    "-v", "--voice",
    default=None,
    help=f"Voice to use (default: {config.voice})",
)
@click.option(
    "--rate",
    default=None,
    help=f"Speaking rate, e.g. +10% (default: {config.voice_rate})",
)
@click.option(
    "--lang",
    default=None,
    help=f"Language for symbol words (default: {config.lang})",
)
@click.option(
    "--from-offset",
    type=int,
    default=None,
    help="Start reading at this character offset",
)
@click.option(
    "--selection",
    type=(int, int),
    default=None,
    help="Read only the characters in [START, END)",
)
def read(
    input_file: str,
    output: Optional[str],
    timing: Optional[str],
    voice: Optional[str],
    rate: Optional[str],
    lang: Optional[str],
    from_offset: Optional[int],
    selection: Optional[tuple],
):
    """
    Read a document aloud with live highlighting.

    Press Ctrl+C to stop.
    """
    input_path = Path(input_file)
    logger.header(f"Reading: {input_path.name}")

    text = input_path.read_text(encoding="utf-8")

    options = FilterOptions.from_config()
    if lang:
        options.lang = lang
    settings = SessionSettings()
    if voice:
        settings.voice = voice
    if rate:
        settings.rate = rate

    if selection:
        mode = ReadMode.SELECTION
    elif from_offset is not None:
        mode = ReadMode.CURSOR
    else:
        mode = ReadMode.DOCUMENT

    editor = ConsoleEditor(text, cursor=from_offset or 0, selection=selection)
    sink = RecordingAudioSink(Path(output) if output else None)
    session = ReadAlongSession(editor, sink, EdgeTransport(), options=options, settings=settings)

    try:
        completed = asyncio.run(_read(session, mode, input_path, timing))
    except KeyboardInterrupt:
        session.stop()
        logger.warning("Interrupted")
        sys.exit(130)
    except VoxTrackError as e:
        logger.error(str(e))
        sys.exit(1)

    if completed:
        logger.success("Finished reading")
    else:
        sys.exit(1)


async def _read(
    session: ReadAlongSession,
    mode: ReadMode,
    input_path: Path,
    timing: Optional[str],
) -> bool:
    logger.step(f"Voice: {session.settings.voice}")
    with logger.status("Connecting to the speech service..."):
        await session.start_from_editor(mode)
    completed = await session.run_poll_loop()

    if completed and timing:
        builder = TimingMap(
            document=str(input_path),
            voice=session.settings.voice,
            audio_file=str(session.sink.output_path) if session.sink.output_path else None,
        )
        builder.add_events(
            session.index,
            [state.chunk for state in session.chunks],
            session.document_base,
        )
        builder.save(Path(timing))

    session.stop()
    return completed


@cli.command()
@click.option("-l", "--locale", default=None, help="Only show voices for this locale, e.g. en-US")
def voices(locale: Optional[str]):
    """
    List available Edge voices.
    """
    logger.header("Available Edge Voices")

    logger.console.print("[bold]Shortcuts[/bold]")
    for alias, name in EDGE_VOICES.items():
        logger.console.print(f"  {alias:<15} - {name}")

    try:
        with logger.status("Fetching voice list..."):
            found = asyncio.run(list_voices(locale))
    except VoxTrackError as e:
        logger.warning(str(e))
        found = []

    if found:
        table = Table()
        table.add_column("Voice")
        table.add_column("Locale")
        table.add_column("Gender")
        for v in found:
            table.add_row(v.get("ShortName", ""), v.get("Locale", ""), v.get("Gender", ""))
        logger.console.print()
        logger.console.print(table)

    logger.console.print(f"\nCurrent default: {config.voice}")


@cli.command()
def info():
    """
    Show configuration.
    """
    logger.header("VoxTrack")

    logger.console.print("[bold]Paths:[/bold]")
    logger.console.print(f"  Project root: {config.project_root}")

    logger.console.print("\n[bold]Voice Settings:[/bold]")
    logger.console.print(f"  Default voice: {config.voice}")
    logger.console.print(f"  Rate:          {config.voice_rate}")
    logger.console.print(f"  Language:      {config.lang}")

    logger.console.print("\n[bold]Sync Settings:[/bold]")
    logger.console.print(f"  Chunk length:  {config.max_chunk_length}")
    logger.console.print(f"  Lookback:      {config.recovery_lookback}")
    logger.console.print(f"  Max retries:   {config.max_retries}")
    logger.console.print(f"  Poll interval: {config.poll_interval:.3f}s")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
