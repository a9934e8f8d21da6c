#!/usr/bin/env python3
from __future__ import annotations

"""
SubRelay: chunked subtitle translation through conversational AI endpoints.

CLI entry point, minimal logic here:
- Parses command-line arguments and configures logging.
- Dispatches to:
    • subrelay_lib/copilot_client.py → CopilotClient.login_and_save_session()
    • subrelay_lib/pipeline.py       → run_pipeline() / run_interactive()
    • subrelay_lib/translator.py     → Translator.translate() for --text

# ============================================================
# 📂 Project Structure
# ============================================================
subrelay/
├── subrelay.py                  # CLI entry point: parses args & dispatches
│
├── subrelay_lib/                # All reusable logic lives here
│   ├── __init__.py              # Empty (marks this as a package)
│   ├── config_manager.py        # Load/save/validate config.json
│   ├── copilot_client.py        # Playwright automation of Copilot Web
│   ├── errors.py                # Translation error taxonomy
│   ├── ffmpeg_utils.py          # Subtitle track probing, extraction, selection
│   ├── lang_utils.py            # Language code normalization & validation
│   ├── llm_adapter.py           # Session-based endpoints (Copilot, Ollama, OpenRouter)
│   ├── pipeline.py              # CLI and interactive workflows
│   ├── prompt_utils.py          # Translation and file-name prompts
│   ├── response_parser.py       # Tolerant JSON-array reply parsing
│   ├── retry.py                 # Retry loop with doubling timeouts
│   ├── session_manager.py       # Lazy session creation and quota rotation
│   ├── srt_utils.py             # Parse/write SRT, chunk ranges, language detection
│   └── translator.py            # Single/bulk translation & chunked reassembly
│
├── cfg/
│   ├── config.json              # User-editable configuration
│   └── copilot_storage.json     # Saved Copilot login session
│
└── tests/                       # pytest suite (fake endpoint, no network)
"""

import argparse
import logging
from pathlib import Path

from subrelay_lib.config_manager import load_config, validate_config
from subrelay_lib.lang_utils import is_valid_target_language
from subrelay_lib.llm_adapter import SUPPORTED_BACKENDS
from subrelay_lib.pipeline import (
    EXIT_MISSING_INPUT,
    EXIT_OK,
    EXIT_TRANSLATION_FAILED,
    open_translator,
    run_interactive,
    run_pipeline,
)

logger = logging.getLogger("subrelay")


def configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def apply_overrides(cfg: dict, args: argparse.Namespace) -> dict:
    """Return a copy of cfg with command-line overrides applied (not saved)."""
    cfg = dict(cfg)
    if args.chunk_size is not None:
        cfg["chunk_size"] = args.chunk_size
    if args.backend:
        cfg["backend"] = args.backend
    if args.model:
        cfg["model"] = args.model
    if args.show_browser:
        cfg["headless"] = False
    return cfg


def dispatch(args: argparse.Namespace) -> int:
    if args.login:
        from subrelay_lib.copilot_client import CopilotClient
        CopilotClient(headless=False).login_and_save_session()
        return EXIT_OK

    cfg = apply_overrides(load_config(), args)
    if args.check_config:
        ok = validate_config(cfg, verbose=True)
        print("\n✅ Config is valid." if ok else "\n❌ Config has invalid values.")
        return EXIT_OK if ok else EXIT_MISSING_INPUT
    if not validate_config(cfg):
        print("\n❌ Invalid configuration. Run with --check-config for details.")
        return EXIT_MISSING_INPUT

    lang = args.target or args.lang or cfg["target_language"]
    if not is_valid_target_language(lang):
        print(f"❌ Invalid target language code: {lang}")
        return EXIT_MISSING_INPUT

    if args.text is not None:
        with open_translator(cfg) as translator:
            print(translator.translate(args.text, lang))
        return EXIT_OK

    if args.input is None:
        return run_interactive(cfg, verbosity=args.verbose)

    return run_pipeline(
        args.input,
        cfg,
        output_path=args.output,
        target_language=lang,
        track_index=args.track,
        verbosity=args.verbose,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="SubRelay",
        description="SubRelay: translate subtitles in chunks through an AI chat endpoint",
        epilog="Example: subrelay movie.mkv movie.he.srt he -v"
    )
    parser.add_argument("input", nargs="?", type=Path, help="Video file or .srt to translate")
    parser.add_argument("output", nargs="?", type=Path,
                        help="Output .srt (default: <input stem>.<lang>.srt)")
    parser.add_argument("lang", nargs="?", help="Target language code, e.g. he, es, pt-BR")

    parser.add_argument("-t", "--target", help="Target language code (overrides positional/config)")
    parser.add_argument("--track", type=int, default=0,
                        help="Subtitle stream to extract from video files (default: 0)")
    parser.add_argument("--chunk-size", type=int, help="Subtitle entries per request")
    parser.add_argument("--backend", choices=SUPPORTED_BACKENDS, help="Translation endpoint")
    parser.add_argument("--model", help="Model name for ollama/openrouter")
    parser.add_argument("--show-browser", action="store_true",
                        help="Run the Copilot browser with a visible window")

    group = parser.add_mutually_exclusive_group()
    group.add_argument("--text", help="Translate a single text and print the result")
    group.add_argument("--login", action="store_true",
                       help="Log in to Copilot in a browser window and save the session")
    group.add_argument("--check-config", action="store_true",
                       help="Validate cfg/config.json and print each value")

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be used multiple times: -v, -vv, -vvv)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """
    Entry point for SubRelay CLI.

    With no input file, runs the interactive flow. Otherwise translates the
    given file and exits with 0 on success, 1 for a missing input or bad
    arguments, 2 when subtitle extraction fails and 3 when translation fails.
    """
    args = build_parser().parse_args(argv)

    # Clamp verbosity to max 3
    args.verbose = min(args.verbose, 3)
    configure_logging(args.verbose)

    try:
        code = dispatch(args)
    except KeyboardInterrupt:
        print("\n⚠️ Cancelled by user.")
        raise SystemExit(130)
    except Exception as e:
        logger.debug("Fatal error", exc_info=True)
        print(f"\n❌ Error: {e}")
        raise SystemExit(EXIT_TRANSLATION_FAILED)

    raise SystemExit(code)


if __name__ == "__main__":
    main()
