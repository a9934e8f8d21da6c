#!/usr/bin/env python3
from __future__ import annotations

"""
Main processing pipeline for SubRelay.

Handles:
- CLI mode: input, output and target language given up front.
- Interactive mode: prompts for input file, subtitle track, target language
  and output file (with optional AI-suggested names).
- Extraction of a subtitle track from video files via ffmpeg.
- Chunked translation via the configured endpoint, with a progress bar.
- Summary and output of the final SRT.

Exit codes: 0 success, 1 missing input, 2 extraction failed, 3 translation failed.
"""

import logging
import time
import uuid
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Any, List, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from subrelay_lib.errors import TranslationError
from subrelay_lib.ffmpeg_utils import choose_subtitle_track, extract_subtitle_track, probe_subtitle_tracks
from subrelay_lib.lang_utils import COMMON_TARGET_LANGUAGES, is_valid_target_language, normalize_lang_code
from subrelay_lib.llm_adapter import LLMConfig, TranslationEndpoint, create_endpoint
from subrelay_lib.prompt_utils import build_output_name_prompt, parse_output_name_suggestions
from subrelay_lib.srt_utils import build_chunks, detect_language_from_srt, parse_srt, write_srt
from subrelay_lib.translator import Translator, TranslatorSettings, translate_entries

logger = logging.getLogger(__name__)

console = Console()

EXIT_OK = 0
EXIT_MISSING_INPUT = 1
EXIT_EXTRACTION_FAILED = 2
EXIT_TRANSLATION_FAILED = 3

SUGGESTION_TIMEOUT_SEC = 60
CUSTOM_NAME_CHOICE = "[Enter custom name]"


# ------------------------------
# Building blocks
# ------------------------------
def build_llm_config(cfg: dict[str, Any]) -> LLMConfig:
    return LLMConfig(
        backend=cfg["backend"],
        model=cfg["model"],
        ollama_path=str(cfg["ollama_path"]) if cfg.get("ollama_path") else None,
        openrouter_url=cfg["openrouter_url"],
        api_key_env=cfg["openrouter_api_key_env"],
        headless=bool(cfg["headless"]),
    )


def build_translator_settings(cfg: dict[str, Any]) -> TranslatorSettings:
    return TranslatorSettings(
        max_attempts=cfg["max_attempts"],
        single_base_timeout=float(cfg["single_timeout_sec"]),
        bulk_base_timeout=float(cfg["bulk_timeout_sec"]),
        max_messages_per_session=cfg["max_messages_per_session"],
        fallback_on_bulk_timeout=bool(cfg["fallback_on_bulk_timeout"]),
    )


def open_translator(cfg: dict[str, Any]) -> Translator:
    """
    Create the configured endpoint and wrap it in a Translator.
    The caller must close it (use `with`).
    """
    endpoint = create_endpoint(build_llm_config(cfg))
    return Translator(endpoint, build_translator_settings(cfg))


def default_output_path(input_path: Path, target_language: str) -> Path:
    """<dir>/<stem>.<lang>.srt next to the input file."""
    return input_path.with_name(f"{input_path.stem}.{target_language}.srt")


def backup_existing(out_path: Path, verbosity: int = 0) -> None:
    """
    If the target file already exists, rename it to .old (with counter if needed).

    Raises:
        OSError: If the rename fails.
    """
    if not out_path.exists():
        return
    backup_path = out_path.with_suffix(out_path.suffix + ".old")
    counter = 1
    while backup_path.exists():
        backup_path = out_path.with_suffix(out_path.suffix + f".old.{counter}")
        counter += 1
    out_path.rename(backup_path)
    if verbosity >= 1:
        print(f"⚠️ Existing file renamed to: {backup_path}")


def suggest_output_names(
    endpoint: TranslationEndpoint,
    input_path: Path,
    target_language: str,
) -> List[Path]:
    """
    Ask the model for output file names in a dedicated one-off session.

    Returns:
        Up to 6 suggested paths next to the input file, or [] if the model
        could not be reached.
    """
    prompt = build_output_name_prompt(input_path.name, target_language)
    handle = None
    try:
        handle = endpoint.create_session()
        reply = endpoint.send(handle, prompt, SUGGESTION_TIMEOUT_SEC)
    except TranslationError as e:
        logger.warning("Could not get file name suggestions: %s", e)
        return []
    finally:
        if handle is not None:
            try:
                endpoint.close_session(handle)
            except Exception as e:
                logger.debug("Error closing suggestion session (ignored): %s", e)
    return parse_output_name_suggestions(reply, input_path.parent)


def show_configuration(title: str, rows: List[tuple[str, str]]) -> None:
    table = Table(title=f"[bold blue]{title}[/]", show_lines=False)
    table.add_column("[bold]Setting[/]")
    table.add_column("[bold]Value[/]", overflow="fold")
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)
    console.print()


def progress_bar() -> Progress:
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeRemainingColumn(),
        SpinnerColumn(),
        console=console,
    )


# ------------------------------
# Interactive prompts
# ------------------------------
def prompt_input_path() -> Path:
    while True:
        raw = input("Enter input file path (video file or .srt): ").strip().strip('"')
        path = Path(raw).expanduser()
        if raw and path.is_file():
            return path
        print("   ✗ File not found")


def prompt_target_language(default: str) -> str:
    hint = ", ".join(COMMON_TARGET_LANGUAGES)
    while True:
        raw = input(f"Enter target language code (e.g., {hint}) [{default}]: ").strip()
        code = raw or default
        if is_valid_target_language(code):
            return code
        print("   ✗ Invalid language code")


def prompt_output_path(suggestions: List[Path]) -> Path:
    choices = [str(p) for p in suggestions] + [CUSTOM_NAME_CHOICE]
    print("Suggested output file names:")
    for i, choice in enumerate(choices, start=1):
        print(f"  {i:>2} | {choice}")

    while True:
        raw = input("➡️  Select output file by number: ").strip()
        if raw.isdigit() and 1 <= int(raw) <= len(choices):
            selected = choices[int(raw) - 1]
            break
        print("   ⚠️ Choice out of range.")

    if selected != CUSTOM_NAME_CHOICE:
        return Path(selected)

    while True:
        raw = input("Enter output .srt file path: ").strip().strip('"')
        if raw:
            return Path(raw).expanduser()
        print("   ✗ Please provide a valid path")


# ------------------------------
# Translation run
# ------------------------------
def process_translation(
    input_path: Path,
    output_path: Path,
    target_language: str,
    track_index: int,
    translator: Translator,
    cfg: dict[str, Any],
    verbosity: int = 0,
) -> int:
    """
    Extract (if needed), parse, translate and write one subtitle file.

    The output file is only written after every chunk has been translated
    (or has fallen back to its original text). A fatal translation error
    leaves no output behind.

    Returns:
        Exit code.
    """
    temp_srt: Optional[Path] = None
    try:
        if input_path.suffix.lower() == ".srt":
            print("ℹ️ Input is an SRT file; skipping extraction.")
            working_srt = input_path
        else:
            temp_srt = Path(tempfile.gettempdir()) / f"{uuid.uuid4()}.srt"
            console.rule("[blue]Extraction Phase[/]", style="grey50", align="left")
            with console.status("[yellow]Extracting subtitles with ffmpeg...[/]"):
                extracted = extract_subtitle_track(
                    input_path, temp_srt, track_index, ffmpeg_path=cfg["ffmpeg_path"]
                )
            if not extracted:
                return EXIT_EXTRACTION_FAILED
            print("✅ Subtitle extraction succeeded.\n")
            working_srt = temp_srt

        entries = parse_srt(working_srt, verbosity=verbosity)
        total = len(entries)
        chunk_size = cfg["chunk_size"]
        chunk_count = len(build_chunks(total, chunk_size))

        if entries:
            src_lang = detect_language_from_srt(working_srt, verbosity=verbosity)
            if src_lang and normalize_lang_code(src_lang) == normalize_lang_code(target_language):
                print(f"⚠️ Subtitles already appear to be in '{src_lang}'; translating anyway.")
        else:
            print("⚠️ No subtitle entries found; writing an empty file.")

        console.rule("[blue]Translation Phase[/]", style="grey50", align="left")
        print(f"ℹ️ Translating {total} subtitle entries in chunks of {chunk_size}...\n")

        started = time.monotonic()
        try:
            with progress_bar() as progress:
                task = progress.add_task(f"[green]Translating subtitles (0/{total})[/]", total=total)

                def on_chunk_done(number: int, count: int, done: int) -> None:
                    progress.update(
                        task,
                        completed=done,
                        description=f"[green]Translating subtitles ({done}/{total})[/]",
                    )

                translated_entries = translate_entries(
                    entries, target_language, translator, chunk_size, on_chunk_done
                )
        except TranslationError as e:
            print(f"\n❌ Translation aborted, no output written: {e}")
            return EXIT_TRANSLATION_FAILED
        duration = time.monotonic() - started

        stats = translator.stats
        avg_chunk = duration / chunk_count if chunk_count else 0.0
        show_configuration("Translation Summary", [
            ("Total Subtitles", str(total)),
            ("Total Chunks", str(chunk_count)),
            ("Total Duration", str(timedelta(seconds=int(duration)))),
            ("Average Chunk Time", f"{avg_chunk:.2f}s"),
            ("Untranslated Chunks", f"{stats.fallbacks} ({stats.fallback_entries} entries)"),
            ("Sessions Used", str(translator.sessions.sessions_created)),
        ])
        if stats.fallbacks:
            print(f"⚠️ {stats.fallbacks} chunk(s) kept their original text after failed translation attempts.")

        console.rule("[blue]Output Phase[/]", style="grey50", align="left")
        backup_existing(output_path, verbosity=verbosity)
        write_srt(output_path, translated_entries)
        print(f"✅ Translated subtitles written to: {output_path}")
        return EXIT_OK

    finally:
        if temp_srt is not None and temp_srt.exists():
            try:
                temp_srt.unlink()
                if verbosity >= 1:
                    print(f"🗑️ Deleted temporary SRT: {temp_srt}")
            except OSError as e:
                logger.warning("Failed to delete temporary SRT %s: %s", temp_srt, e)
                print(f"⚠️ Failed to delete temporary SRT: {temp_srt}")


def run_pipeline(
    input_path: Path,
    cfg: dict[str, Any],
    output_path: Optional[Path] = None,
    target_language: Optional[str] = None,
    track_index: int = 0,
    verbosity: int = 0,
) -> int:
    """
    CLI mode: translate one file without prompting.

    Args:
        input_path: Video file or .srt.
        cfg: Loaded configuration.
        output_path: Destination .srt (default: <stem>.<lang>.srt next to input).
        target_language: Target language code (default: config target_language).
        track_index: Subtitle stream to extract from video files.
        verbosity: Verbosity level (0 = normal output, higher = more debug info).

    Returns:
        Exit code.
    """
    if not input_path.is_file():
        print(f"✗ Input file not found: {input_path}")
        return EXIT_MISSING_INPUT

    lang = target_language or cfg["target_language"]
    out = output_path or default_output_path(input_path, lang)

    console.rule("[bold blue]Subtitle Translator[/] [dim](CLI Mode)[/]", style="blue")
    show_configuration("Configuration", [
        ("Input", str(input_path)),
        ("Output", str(out)),
        ("Target Language", lang),
        ("Subtitle Track", str(track_index)),
        ("Chunk Size", f"{cfg['chunk_size']} entries"),
        ("Backend", f"{cfg['backend']} ({cfg['model']})"),
    ])

    with open_translator(cfg) as translator:
        return process_translation(input_path, out, lang, track_index, translator, cfg, verbosity)


def run_interactive(cfg: dict[str, Any], verbosity: int = 0) -> int:
    """
    Interactive mode: ask for everything, then translate.

    Returns:
        Exit code.
    """
    console.rule("[bold blue]Subtitle Translator[/]", style="blue")

    print("Phase 1: Select Input File")
    input_path = prompt_input_path()
    print()

    track_index = 0
    if input_path.suffix.lower() != ".srt":
        print("Phase 1.5: Select Subtitle Track")
        tracks = probe_subtitle_tracks(input_path, ffprobe_path=cfg["ffprobe_path"])
        track_index = choose_subtitle_track(tracks)
        print()

    print("Phase 2: Select Target Language")
    lang = prompt_target_language(cfg["target_language"])
    print()

    with open_translator(cfg) as translator:
        print("Phase 3: Set Output File")
        suggestions: List[Path] = []
        if cfg["suggest_output_names"]:
            with console.status("[yellow]Generating file name suggestions...[/]"):
                suggestions = suggest_output_names(translator.endpoint, input_path, lang)
        if not suggestions:
            suggestions = [default_output_path(input_path, lang)]
        out = prompt_output_path(suggestions)
        print()

        show_configuration("Configuration Summary", [
            ("Input", str(input_path)),
            ("Output", str(out)),
            ("Target Language", lang),
            ("Subtitle Track", str(track_index)),
            ("Chunk Size", f"{cfg['chunk_size']} entries"),
            ("Backend", f"{cfg['backend']} ({cfg['model']})"),
        ])

        return process_translation(input_path, out, lang, track_index, translator, cfg, verbosity)
