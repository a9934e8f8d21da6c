#!/usr/bin/env python3
from __future__ import annotations

"""
Language utilities for SubRelay.

Provides:
- Mapping from ISO 639-2 to ISO 639-1 codes.
- Normalisation of language codes to ISO 639-1.
- Validation of target language codes entered by the user.
"""

import re

# ISO 639-2 (bibliographic and terminology) codes for the languages offered as
# targets; langdetect itself always reports 2-letter codes.
ISO639_MAP: dict[str, str] = {
    "eng": "en", "spa": "es", "fra": "fr", "fre": "fr", "deu": "de", "ger": "de",
    "heb": "he", "jpn": "ja", "por": "pt", "rus": "ru", "zho": "zh", "chi": "zh",
}

# Offered as examples in the interactive prompt
COMMON_TARGET_LANGUAGES = ["en", "es", "fr", "de", "he", "ja", "pt", "ru", "zh"]

# 2-5 characters: "en", "pt-BR", "zh-TW", "eng"
TARGET_CODE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z]{2})?$")


def normalize_lang_code(code: str | None) -> str | None:
    """
    Normalize a language code to ISO 639-1 when possible.

    Accepts:
        - 2-letter codes (e.g., 'en')
        - 3-letter codes (e.g., 'eng')
        - IETF tags with region/script (e.g., 'en-US', 'eng-Latn')

    Args:
        code: The language code to normalize.

    Returns:
        The 2-letter ISO 639-1 code if recognized, otherwise None.
    """
    if not code:
        return None

    c = code.lower().strip()
    base = c.split("-")[0]

    if len(base) == 2:
        return base
    if len(base) == 3:
        mapped = ISO639_MAP.get(base)
        return mapped if mapped and len(mapped) == 2 else None

    return None


def is_valid_target_language(code: str | None) -> bool:
    """
    Check that a target language code looks usable (2-5 chars, e.g. 'he', 'pt-BR').
    """
    if not code or not code.strip():
        return False
    return bool(TARGET_CODE_RE.match(code.strip()))
