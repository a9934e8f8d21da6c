#!/usr/bin/env python3
from __future__ import annotations

"""
Bulk translation reply parsing for SubRelay.

The bulk prompt asks the model for a JSON array of
    {"index": <1-based position>, "translated": "<text>"}
objects. Models often wrap that array in chatter or code fences, so parsing
works in two stages:
1. Bracket-boundary extraction: first '[' to last ']'.
2. JSON decode of that substring (one trailing-comma repair pass).

Failure is a value (BulkParseResult with an error), never an exception, so
callers can tell "no array found" apart from "array found, some items missing".
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Trailing commas before a closing bracket/brace, e.g. `{"a": 1,}` or `[1, 2,]`
TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


@dataclass
class BulkParseResult:
    """
    Outcome of parsing one bulk reply.

    Attributes:
        texts: Exactly `expected_count` strings when parsing succeeded, else empty.
        error: Reason for failure, or None on success.
        missing: 1-based indices that were absent from the reply (filled with "").
    """
    texts: List[str] = field(default_factory=list)
    error: Optional[str] = None
    missing: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_json_array(text: str) -> Optional[str]:
    """
    Return the substring from the first '[' to the last ']' (inclusive),
    or None if either delimiter is missing or they are out of order.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end < 0 or end < start:
        return None
    return text[start:end + 1]


def decode_json_array(candidate: str) -> Any:
    """
    Decode a JSON document, retrying once with trailing commas removed.

    Raises:
        json.JSONDecodeError: If the document is still invalid after repair.
    """
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        repaired = TRAILING_COMMA_RE.sub(r"\1", candidate)
        if repaired == candidate:
            raise
        return json.loads(repaired)


def _coerce_index(value: Any) -> Optional[int]:
    # bool is an int subclass; `true` is never a valid position
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def collect_items(items: List[Any]) -> Dict[int, str]:
    """
    Map declared index → translated text. Field names are matched
    case-insensitively; items missing either field are skipped and the
    last occurrence of a duplicate index wins.
    """
    by_index: Dict[int, str] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        fields = {str(k).lower(): v for k, v in item.items()}
        if "index" not in fields or "translated" not in fields:
            continue
        index = _coerce_index(fields["index"])
        if index is None:
            continue
        translated = fields["translated"]
        by_index[index] = "" if translated is None else str(translated)
    return by_index


def parse_bulk_response(response_text: Optional[str], expected_count: int) -> BulkParseResult:
    """
    Parse a bulk translation reply into exactly `expected_count` strings.

    Args:
        response_text: Raw reply text from the model (may be None).
        expected_count: Number of entries that were sent for translation.

    Returns:
        BulkParseResult. On success `texts` has length `expected_count`, with
        "" at every index the reply did not provide. On failure `error` is set
        and `texts` is empty.
    """
    candidate = extract_json_array(response_text or "")
    if candidate is None:
        logger.warning("Could not find JSON array in response")
        return BulkParseResult(error="no JSON array found in response")

    try:
        items = decode_json_array(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Failed to decode bulk translation JSON: %s", e)
        return BulkParseResult(error=f"invalid JSON array: {e.msg}")

    if not isinstance(items, list):
        return BulkParseResult(error="decoded JSON is not an array")
    if not items:
        logger.warning("Parsed JSON array is empty")
        return BulkParseResult(error="JSON array is empty")

    by_index = collect_items(items)

    texts: List[str] = []
    missing: List[int] = []
    for i in range(1, expected_count + 1):
        if i in by_index:
            texts.append(by_index[i])
        else:
            logger.warning("Missing translation for index %d", i)
            missing.append(i)
            texts.append("")

    logger.debug("Parsed %d bulk translations (%d missing)", len(texts), len(missing))
    return BulkParseResult(texts=texts, missing=missing)
