#!/usr/bin/env python3
from __future__ import annotations

"""
Configuration management for SubRelay.

Handles:
- Creating a default config file if missing.
- Loading and saving configuration values.
- Ensuring all required keys exist.
- Validating values before a run.
"""

import json
from pathlib import Path
from typing import Any

from subrelay_lib.lang_utils import is_valid_target_language
from subrelay_lib.llm_adapter import OPENROUTER_CHAT_URL, SUPPORTED_BACKENDS

# Path to the configuration file (stored in cfg/ at project root)
CONFIG_PATH = Path(__file__).parent.parent / "cfg" / "config.json"

# DEFAULT_CONFIG defines all required keys with safe defaults
DEFAULT_CONFIG: dict[str, Any] = {
    "target_language": "en",

    # Endpoint selection: "copilot_web", "ollama" or "openrouter"
    "backend": "copilot_web",
    "model": "gpt-4.1",
    "headless": True,
    "ollama_path": "ollama",
    "openrouter_url": OPENROUTER_CHAT_URL,
    "openrouter_api_key_env": "OPENROUTER_API_KEY",

    "ffmpeg_path": "ffmpeg",
    "ffprobe_path": "ffprobe",

    # Entries sent per bulk request
    "chunk_size": 10,
    # Attempts per request; timeouts double on each attempt starting from these
    "max_attempts": 5,
    "single_timeout_sec": 10,
    "bulk_timeout_sec": 15,
    # Messages sent through one conversation before it is replaced
    "max_messages_per_session": 5,
    # Return the original texts instead of aborting when a chunk times out on every attempt
    "fallback_on_bulk_timeout": False,

    # Ask the model for output file names in interactive mode
    "suggest_output_names": True,
}

POSITIVE_INT_KEYS = ("chunk_size", "max_attempts", "max_messages_per_session")
POSITIVE_NUMBER_KEYS = ("single_timeout_sec", "bulk_timeout_sec")
BOOL_KEYS = ("headless", "fallback_on_bulk_timeout", "suggest_output_names")


def create_default_config(path: Path = CONFIG_PATH) -> None:
    """
    Create the config file with default values if it doesn't exist.

    Raises:
        OSError: If the file cannot be written.
    """
    if path.exists():
        print(f"   ⚠️ Config already exists at {path}")
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(DEFAULT_CONFIG, indent=2), encoding="utf-8")
    print(f"   ✅ Created default config at: {path}")


def ensure_keys(cfg: dict[str, Any], path: Path = CONFIG_PATH) -> dict[str, Any]:
    """
    Ensure all expected keys from DEFAULT_CONFIG are present in cfg.
    Missing keys are added with default values and the config is saved.

    Returns:
        dict[str, Any]: Updated configuration dictionary.
    """
    updated = False
    for key, value in DEFAULT_CONFIG.items():
        if key not in cfg:
            cfg[key] = value
            updated = True
    if updated:
        save_config(cfg, path)
    return cfg


def load_config(path: Path = CONFIG_PATH) -> dict[str, Any]:
    """
    Load the config file, creating it if missing.

    Returns:
        dict[str, Any]: Parsed configuration dictionary with all keys present.

    Raises:
        json.JSONDecodeError: If the file exists but is invalid.
        OSError: If reading the file fails.
    """
    if not path.exists():
        create_default_config(path)

    try:
        cfg = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"   ❌ Config file is corrupted: {e}")
        print(f"   ⚠️ Please fix or delete {path} and try again.")
        raise

    return ensure_keys(cfg, path)


def save_config(cfg: dict[str, Any], path: Path = CONFIG_PATH) -> None:
    """
    Save config to disk. Write failures are reported, not raised.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
    except OSError as e:
        print(f"\n❌ Failed to save config file: {e}")
        return
    print(f"\n💾 Updated config at {path}")


def validate_config(cfg: dict[str, Any], verbose: bool = False) -> bool:
    """
    Validate config values.

    Checks performed:
    1. backend is supported.
    2. target_language looks like a language code.
    3. Counts are positive integers and timeouts positive numbers.
    4. Flags are booleans.

    Args:
        cfg: The configuration dictionary to validate.
        verbose: Also print the values that passed.

    Returns:
        bool: True if configuration is valid, False otherwise.
    """
    ok = True

    backend = str(cfg.get("backend", "")).lower()
    if backend not in SUPPORTED_BACKENDS:
        print(f"   ⚠️ Invalid backend: {cfg.get('backend')} (expected one of {', '.join(SUPPORTED_BACKENDS)})")
        ok = False
    elif verbose:
        print(f"   ✅ backend: {backend}")

    target = cfg.get("target_language")
    if not is_valid_target_language(target):
        print(f"   ⚠️ Invalid target_language: {target}")
        ok = False
    elif verbose:
        print(f"   ✅ target_language: {target}")

    for key in POSITIVE_INT_KEYS:
        value = cfg.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            print(f"   ⚠️ Invalid {key}: {value} (must be positive int)")
            ok = False
        elif verbose:
            print(f"   ✅ {key}: {value}")

    for key in POSITIVE_NUMBER_KEYS:
        value = cfg.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            print(f"   ⚠️ Invalid {key}: {value} (must be positive number)")
            ok = False
        elif verbose:
            print(f"   ✅ {key}: {value}")

    for key in BOOL_KEYS:
        value = cfg.get(key)
        if not isinstance(value, bool):
            print(f"   ⚠️ Invalid {key}: {value} (must be boolean)")
            ok = False

    return ok
