#!/usr/bin/env python3
from __future__ import annotations

"""
Video subtitle utilities for SubRelay.

Provides:
- Probing a video container for subtitle streams with ffprobe.
- Extracting one subtitle stream to SRT with ffmpeg (with a fallback mapping).
- Interactive selection of a subtitle track.
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from json import JSONDecodeError
from pathlib import Path
from subprocess import CalledProcessError
from typing import List, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubtitleTrack:
    """
    One subtitle stream inside a video container.

    Attributes:
        stream_index: Absolute stream index in the container.
        subtitle_index: Position among subtitle streams only (for `-map 0:s:N`).
        language: Language tag, or "" if untagged.
        title: Track title, or "" if none.
    """
    stream_index: int
    subtitle_index: int
    language: str = ""
    title: str = ""

    def __str__(self) -> str:
        info = []
        if self.language:
            info.append(f"Lang: {self.language}")
        if self.title:
            info.append(f"Title: {self.title}")
        info_str = f" ({', '.join(info)})" if info else ""
        return f"Subtitle Track #{self.subtitle_index}{info_str}"


def probe_subtitle_tracks(video_path: Path, ffprobe_path: str = "ffprobe") -> List[SubtitleTrack]:
    """
    List the subtitle streams of a video file.

    Args:
        video_path: Path to the video file.
        ffprobe_path: ffprobe executable.

    Returns:
        Subtitle tracks in container order; an empty list if probing fails.
    """
    cmd = [
        ffprobe_path, "-v", "error",
        "-select_streams", "s",
        "-show_entries", "stream=index:stream_tags=language,title",
        "-of", "json",
        str(video_path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        info = json.loads(result.stdout or "{}")
    except FileNotFoundError:
        logger.debug("ffprobe executable not found: %s", ffprobe_path)
        return []
    except CalledProcessError as e:
        logger.debug("ffprobe failed with exit code %s: %s", e.returncode, e.stderr)
        return []
    except JSONDecodeError as e:
        logger.debug("Failed to parse ffprobe JSON output: %s", e)
        return []

    tracks: List[SubtitleTrack] = []
    for stream in info.get("streams", []) or []:
        tags = stream.get("tags", {}) or {}
        tracks.append(SubtitleTrack(
            stream_index=int(stream.get("index", len(tracks))),
            subtitle_index=len(tracks),
            language=tags.get("language", "") or "",
            title=tags.get("title", "") or "",
        ))
    return tracks


def _run_ffmpeg(args: List[str]) -> tuple[bool, str]:
    try:
        proc = subprocess.run(args, capture_output=True, text=True, check=False)
    except FileNotFoundError:
        return False, f"ffmpeg executable not found: {args[0]}"
    return proc.returncode == 0, proc.stderr or ""


def extract_subtitle_track(
    video_path: Path,
    out_path: Path,
    subtitle_index: int = 0,
    ffmpeg_path: str = "ffmpeg"
) -> bool:
    """
    Extract one subtitle stream to SRT.

    Tries `-map 0:s:<subtitle_index>` first; if that fails or produces no file,
    retries mapping all subtitle streams (`-map 0:s`).

    Args:
        video_path: Path to the video file.
        out_path: Destination SRT file path (overwritten).
        subtitle_index: Position among subtitle streams.
        ffmpeg_path: ffmpeg executable.

    Returns:
        True if extraction succeeded, False otherwise.
    """
    primary = [ffmpeg_path, "-y", "-i", str(video_path), "-map", f"0:s:{subtitle_index}", str(out_path)]
    ok, stderr = _run_ffmpeg(primary)
    if ok and out_path.exists():
        return True

    print("⚠️ Primary extraction failed, trying fallback mapping of all subtitle streams...")
    logger.debug(stderr)
    fallback = [ffmpeg_path, "-y", "-i", str(video_path), "-map", "0:s", str(out_path)]
    ok, stderr = _run_ffmpeg(fallback)
    if ok and out_path.exists():
        return True

    print("❌ Failed to extract subtitles with ffmpeg. "
          "Ensure ffmpeg is installed and the file contains subtitle streams.")
    logger.debug(stderr)
    return False


def choose_subtitle_track(tracks: Sequence[SubtitleTrack]) -> int:
    """
    Pick a subtitle track, asking the user only when there is a real choice.

    Returns:
        The chosen track's subtitle_index (0 when there are no tracks).
    """
    if not tracks:
        print("⚠️ No subtitle tracks found in the video file.")
        return 0
    if len(tracks) == 1:
        print(f"✅ Automatically selected the only subtitle track: {tracks[0]}")
        return tracks[0].subtitle_index

    print("\n📋 Available subtitle tracks:\n")
    for i, t in enumerate(tracks, start=1):
        print(f"  {i:>2} | {t}")

    while True:
        choice = input("\n➡️  Select the subtitle track to translate by number: ").strip()
        if not choice.isdigit():
            print("   ⚠️ Please enter a valid number.")
            continue
        i = int(choice)
        if 1 <= i <= len(tracks):
            return tracks[i - 1].subtitle_index
        print("   ⚠️ Choice out of range.")
