#!/usr/bin/env python3
from __future__ import annotations

"""
Prompt building utilities for SubRelay.

Provides:
- Single-entry and bulk (JSON reply) translation prompts.
- Output file name suggestion prompt and reply parsing.
"""

from pathlib import Path
from typing import List, Sequence


def build_single_prompt(text: str, tgt_lang: str) -> str:
    """
    Build a prompt that translates one subtitle text.

    Args:
        text: Subtitle text (may span several lines).
        tgt_lang: Target language code.

    Returns:
        The prompt string.
    """
    return (
        f"Translate the following subtitle text to {tgt_lang}. "
        f"Respond only with the translated text (no extra commentary):\n\n{text}"
    )


def build_bulk_prompt(texts: Sequence[str], tgt_lang: str) -> str:
    """
    Build a prompt that translates several subtitle entries in one call.

    The model is told to reply with a JSON array of
    {"index": <1-based position>, "translated": "<text>"} objects; see
    response_parser.parse_bulk_response() for the matching parser.

    Args:
        texts: Subtitle texts in order.
        tgt_lang: Target language code.

    Returns:
        The prompt string.
    """
    numbered = "\n".join(f"{i}. {t}" for i, t in enumerate(texts, start=1))

    return f"""
Translate the following {len(texts)} subtitle entries to {tgt_lang}.
IMPORTANT: Respond ONLY with a valid JSON array, no additional text before or after.
The JSON must be valid and properly formatted. Use this exact structure:
[
  {{"index": 1, "translated": "<translated text 1>"}},
  {{"index": 2, "translated": "<translated text 2>"}},
  {{"index": 3, "translated": "<translated text 3>"}}
]

Subtitle entries to translate:

{numbered}
""".strip() + "\n"


def build_output_name_prompt(input_name: str, tgt_lang: str, count: int = 6) -> str:
    """
    Build a prompt asking for output file name suggestions for the translated SRT.
    """
    placeholders = "\n".join(f"<filename{i}>.srt" for i in range(1, count + 1))
    return f"""
Given an input video file named "{input_name}" that will be translated to language code "{tgt_lang}", suggest {count} creative and clear output filenames for the translated subtitle file (.srt).
Rules:
- Include the language code "{tgt_lang}" in the filename
- Keep the original filename structure but add translation indicators
- Use different naming patterns (e.g., suffix, prefix, underscore vs dash)
- Only respond with the filenames, one per line, no numbering or extra text
- Use only the filename without directory path

Response Format:
{placeholders}
""".strip()


def parse_output_name_suggestions(reply: str, directory: Path, limit: int = 6) -> List[Path]:
    """
    Turn a suggestion reply into paths inside `directory`.

    Only non-empty lines ending in .srt are kept; directory parts the model
    added anyway are dropped.
    """
    names: List[Path] = []
    for line in (reply or "").splitlines():
        name = line.strip().strip("`\"'")
        if not name or not name.lower().endswith(".srt"):
            continue
        names.append(directory / Path(name).name)
        if len(names) >= limit:
            break
    return names
