#!/usr/bin/env python3
from __future__ import annotations

"""
Model-agnostic endpoint adapters for SubRelay.

Every backend exposes the same session-based interface:
    create_session()                  → opaque handle
    send(handle, prompt, timeout)     → reply text
    close_session(handle)             → release one conversation
    close()                           → release client-wide resources

Backend failures are translated into the errors in subrelay_lib.errors, so
the retry controller never sees library-specific exceptions for the cases it
knows how to handle.

Currently supports:
- Copilot Web (Playwright automation)
- Ollama (local models via the `ollama` CLI)
- OpenRouter (OpenAI-compatible chat completions over HTTP)
"""

import itertools
import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from subrelay_lib.errors import MalformedResponse, TranslationTimeout, TransportFault

logger = logging.getLogger(__name__)

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"

SUPPORTED_BACKENDS = ("copilot_web", "ollama", "openrouter")

# HTTP statuses that mean "this conversation/connection is unusable right now".
# 401/403 (bad or missing API key) fail every request, so they end the run too.
TRANSPORT_STATUSES = {401, 403, 404, 408, 409, 429}


@dataclass
class LLMConfig:
    """
    Configuration for the endpoint adapters.

    Attributes:
        backend: Backend type ("copilot_web", "ollama", "openrouter").
        model: Model name or ID (ignored for copilot_web).
        ollama_path: Path to the Ollama executable (if backend is "ollama").
        openrouter_url: Chat completions URL (if backend is "openrouter").
        api_key_env: Environment variable holding the OpenRouter API key.
        headless: Run the Copilot browser without a window.
    """
    backend: str = "copilot_web"
    model: str = "gpt-4.1"
    ollama_path: Optional[str] = None
    openrouter_url: str = OPENROUTER_CHAT_URL
    api_key_env: str = "OPENROUTER_API_KEY"
    headless: bool = True


class TranslationEndpoint:
    """
    Base class for remote conversational endpoints.
    """

    def create_session(self) -> Any:
        raise NotImplementedError

    def send(self, handle: Any, prompt: str, timeout: float) -> str:
        raise NotImplementedError

    def close_session(self, handle: Any) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release client-wide resources. Default: nothing to release."""


def preview(text: str, head: int = 5, tail: int = 5) -> str:
    """
    First and last few lines of `text`, for debug logging of prompts/replies.
    """
    lines = text.splitlines()
    if len(lines) <= head + tail:
        return text
    return "\n".join(lines[:head] + ["..."] + lines[-tail:])


# ------------------------------
# Copilot Web backend
# ------------------------------
class CopilotWebEndpoint(TranslationEndpoint):
    """
    Copilot Web (https://copilot.microsoft.com) via Playwright automation.
    Requires a saved login session (see CopilotClient.login_and_save_session).
    """

    def __init__(self, config: LLMConfig, client=None) -> None:
        if client is None:
            from subrelay_lib.copilot_client import CopilotClient
            client = CopilotClient(headless=config.headless)
        self.client = client

    def create_session(self) -> Any:
        try:
            return self.client.open_conversation()
        except FileNotFoundError as e:
            # No saved login: no conversation can ever be opened
            raise TransportFault(str(e)) from e
        except PlaywrightTimeoutError as e:
            raise TranslationTimeout(f"Copilot page did not load: {e}") from e
        except PlaywrightError as e:
            raise TransportFault(f"Could not open Copilot conversation: {e}") from e

    def send(self, handle: Any, prompt: str, timeout: float) -> str:
        logger.debug("Prompt preview:\n%s", preview(prompt))
        try:
            reply = self.client.send_prompt(handle, prompt, timeout_sec=timeout)
        except PlaywrightTimeoutError as e:
            raise TranslationTimeout(f"Timed out waiting for Copilot reply after {timeout}s") from e
        except PlaywrightError as e:
            raise TransportFault(f"Copilot conversation failed: {e}") from e
        if reply:
            logger.debug("Reply preview:\n%s", preview(reply))
        return reply or ""

    def close_session(self, handle: Any) -> None:
        self.client.close_conversation(handle)

    def close(self) -> None:
        self.client.close()


# ------------------------------
# Ollama backend
# ------------------------------
@dataclass
class OllamaSession:
    # `ollama run` is stateless; the session only carries identity for rotation
    session_id: int


class OllamaEndpoint(TranslationEndpoint):
    """
    Call a local Ollama model through its CLI.
    """

    def __init__(self, config: LLMConfig) -> None:
        if not config.ollama_path:
            raise ValueError("Ollama path not set in config.")
        self.config = config
        self._ids = itertools.count(1)

    def create_session(self) -> OllamaSession:
        return OllamaSession(session_id=next(self._ids))

    def send(self, handle: Any, prompt: str, timeout: float) -> str:
        logger.debug("Prompt preview for Ollama:\n%s", preview(prompt))
        try:
            proc = subprocess.run(
                [str(self.config.ollama_path), "run", self.config.model],
                input=prompt,
                text=True,
                encoding="utf-8",   # Force UTF-8 so all Unicode chars are supported
                capture_output=True,
                timeout=timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise TranslationTimeout(f"Ollama call timed out after {timeout}s") from e
        except subprocess.CalledProcessError as e:
            raise TransportFault(f"Ollama call failed: {e}\nSTDERR:\n{e.stderr}") from e
        except FileNotFoundError as e:
            raise TransportFault(f"Ollama executable not found: {self.config.ollama_path}") from e

        out = proc.stdout.strip()
        logger.debug("Ollama output preview:\n%s", preview(out))

        # If output looks like JSON, try to parse and extract "response"
        if out.startswith("{") and out.endswith("}"):
            try:
                obj = json.loads(out)
                if isinstance(obj, dict) and "response" in obj:
                    return str(obj["response"]).strip()
            except json.JSONDecodeError:
                pass

        return out

    def close_session(self, handle: Any) -> None:
        pass


# ------------------------------
# OpenRouter backend
# ------------------------------
@dataclass
class ChatSession:
    """
    One HTTP connection pool plus the running conversation history.
    """
    http: requests.Session
    messages: List[Dict[str, str]] = field(default_factory=list)


class OpenRouterEndpoint(TranslationEndpoint):
    """
    OpenAI-compatible chat completions (OpenRouter by default).

    Each session keeps its message history, so rotating the session is what
    bounds the conversation length sent with every request.
    """

    def __init__(self, config: LLMConfig) -> None:
        api_key = os.getenv(config.api_key_env, "")
        if not api_key:
            raise ValueError(f"Environment variable {config.api_key_env} is not set.")
        self.config = config
        self._api_key = api_key

    def create_session(self) -> ChatSession:
        http = requests.Session()
        http.headers.update({
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        })
        return ChatSession(http=http)

    def send(self, handle: Any, prompt: str, timeout: float) -> str:
        messages = handle.messages + [{"role": "user", "content": prompt}]
        payload = {
            "model": self.config.model,
            "messages": messages,
            "stream": False,
        }
        logger.debug("Prompt preview for %s:\n%s", self.config.model, preview(prompt))

        try:
            r = handle.http.post(self.config.openrouter_url, json=payload, timeout=timeout)
        except requests.Timeout as e:
            raise TranslationTimeout(f"Request timed out after {timeout}s") from e
        except requests.ConnectionError as e:
            raise TransportFault(f"Connection failed: {e}") from e

        if r.status_code in TRANSPORT_STATUSES or r.status_code >= 500:
            raise TransportFault(f"HTTP {r.status_code}: {r.text[:200]}")
        r.raise_for_status()

        try:
            content = r.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(f"Unexpected completion payload: {e}") from e

        handle.messages = messages + [{"role": "assistant", "content": content}]
        return content

    def close_session(self, handle: Any) -> None:
        handle.http.close()


def create_endpoint(config: LLMConfig) -> TranslationEndpoint:
    """
    Build the endpoint for `config.backend`.

    Raises:
        ValueError: Unsupported backend or missing backend settings.
    """
    backend = config.backend.lower()
    if backend == "copilot_web":
        return CopilotWebEndpoint(config)
    if backend == "ollama":
        return OllamaEndpoint(config)
    if backend == "openrouter":
        return OpenRouterEndpoint(config)
    raise ValueError(f"Unsupported backend: {config.backend}")
