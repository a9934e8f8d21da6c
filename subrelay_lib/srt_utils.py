#!/usr/bin/env python3
from __future__ import annotations

"""
SRT subtitle utilities for SubRelay.

Provides:
- Data structure for SRT entries.
- Parsing SRT files into structured entries and writing them back.
- Language detection from SRT text.
- Partitioning of the entry list into fixed-size translation chunks.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

# SRT_TIME_RE matches "HH:MM:SS,mmm --> HH:MM:SS,mmm" timing lines.
# Dots are accepted as millisecond separators and trailing position hints are ignored.
SRT_TIME_RE = re.compile(
    r"^\s*(\d{1,2}:\d{2}:\d{2}[,.]\d{1,3})\s*-->\s*(\d{1,2}:\d{2}:\d{2}[,.]\d{1,3})"
)


@dataclass(frozen=True)
class SRTEntry:
    """
    Represents a single subtitle entry in an SRT file.
    """
    idx: int
    start: str
    end: str
    text: str  # single string with internal newlines preserved


def detect_language_from_srt(path: Path, verbosity: int = 0) -> str | None:
    """
    Detect the language of an SRT file's subtitle text.

    Args:
        path: Path to the SRT file.
        verbosity: Verbosity level for optional debug output.

    Returns:
        Detected language code (ISO 639-1) or None if detection fails.
    """
    from langdetect import DetectorFactory, detect
    from langdetect.lang_detect_exception import LangDetectException

    DetectorFactory.seed = 0

    try:
        text_lines: list[str] = []
        with open(path, encoding="utf-8", errors="ignore") as f:
            for line in f:
                if "-->" in line or line.strip().isdigit():
                    continue
                line = re.sub(r"<[^>]+>", "", line)  # strip HTML-like tags
                line = re.sub(r"\{[^}]+\}", "", line)  # strip {tags}
                line = line.strip()
                if line:
                    text_lines.append(line)
                if len(text_lines) >= 80:
                    break
    except OSError as e:
        print(f"❌ Cannot read {path} for language detection: {e}")
        return None

    sample = " ".join(text_lines)
    if not sample.strip():
        print(f"⚠️ No text found in {path.name} for language detection.")
        return None

    try:
        lang = detect(sample)
    except LangDetectException as e:
        print(f"❌ Language detection failed for {path.name}: {e}")
        return None

    if verbosity >= 1:
        print(f"   🛈 Language detection sample length: {len(sample)} chars")
        if verbosity >= 2:
            print(f"      ↳ Sample text: {sample[:200]}{'...' if len(sample) > 200 else ''}")
        print(f"   🛈 Detected language: {lang}")
    return lang


def parse_srt_text(raw: str) -> List[SRTEntry]:
    """
    Parse SRT content into a list of SRTEntry objects.

    Blocks without a timing line are skipped. A missing or non-numeric index
    line is replaced by the entry's position (1-based).
    """
    entries: List[SRTEntry] = []

    # Normalize line endings and drop a leading BOM
    raw = raw.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    blocks = [b for b in re.split(r"\n\s*\n", raw) if b.strip()]

    for block in blocks:
        lines = block.strip("\n").split("\n")

        i = 0
        idx = None
        if lines[i].strip().isdigit():
            idx = int(lines[i].strip())
            i += 1

        if i >= len(lines):
            continue
        m = SRT_TIME_RE.match(lines[i])
        if not m:
            # malformed block
            continue
        start, end = m.groups()
        i += 1

        text = "\n".join(lines[i:]).strip("\n")
        entries.append(
            SRTEntry(
                idx=idx if idx is not None else len(entries) + 1,
                start=start,
                end=end,
                text=text
            )
        )

    return entries


def parse_srt(path: Path, verbosity: int = 0) -> List[SRTEntry]:
    """
    Parse an SRT file into a list of SRTEntry objects.

    Args:
        path: Path to the SRT file.
        verbosity: Verbosity level for optional debug output.

    Returns:
        List of SRTEntry objects.

    Raises:
        OSError: If the file cannot be read.
    """
    raw = Path(path).read_text(encoding="utf-8", errors="ignore")
    entries = parse_srt_text(raw)

    if verbosity >= 1:
        print(f"   🛈 Parsed {len(entries)} valid subtitle entries from {Path(path).name}")
        if verbosity >= 3:
            for e in entries[:5]:
                print(f"      ↳ [{e.idx}] {e.start} --> {e.end} | {repr(e.text)}")
            if len(entries) > 5:
                print("      ...")

    return entries


def format_srt(entries: Sequence[SRTEntry]) -> str:
    """
    Serialize entries back into SRT text.
    """
    out: List[str] = []
    for e in entries:
        out.append(f"{e.idx}\n{e.start} --> {e.end}\n{e.text}\n")
    return "\n".join(out)


def write_srt(path: Path, entries: Sequence[SRTEntry]) -> None:
    """
    Write entries to an SRT file (UTF-8, LF line endings).

    Raises:
        OSError: If the file cannot be written.
    """
    with open(path, "w", encoding="utf-8", newline="\n") as w:
        w.write(format_srt(entries))


def build_chunks(total: int, chunk_size: int) -> List[Tuple[int, int]]:
    """
    Partition `total` entries into consecutive chunks of at most `chunk_size`.

    Args:
        total: Number of entries.
        chunk_size: Maximum entries per chunk (must be positive).

    Returns:
        List of inclusive (start_index, end_index) tuples, in order.
        The last chunk may be shorter; zero entries yields no chunks.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    chunks = [
        (start, min(start + chunk_size, total) - 1)
        for start in range(0, total, chunk_size)
    ]
    return chunks
