#!/usr/bin/env python3
from __future__ import annotations

"""
Translation engine for SubRelay.

Provides:
- Translator: single-entry and bulk translation over one rotating session,
  with retries, exponential timeouts and fallback to the original text.
- translate_all() / translate_entries(): chunked, strictly sequential
  translation of a whole subtitle file with order-preserving reassembly.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

from subrelay_lib.errors import MalformedResponse, TranslationTimeout
from subrelay_lib.llm_adapter import TranslationEndpoint
from subrelay_lib.prompt_utils import build_bulk_prompt, build_single_prompt
from subrelay_lib.response_parser import parse_bulk_response
from subrelay_lib.retry import Outcome, RetryPolicy, RetryResult, run_with_retries
from subrelay_lib.session_manager import SessionManager, TranslationSession
from subrelay_lib.srt_utils import SRTEntry, build_chunks

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10


@dataclass
class TranslatorSettings:
    """
    Tunables for a Translator.

    Attributes:
        max_attempts: Attempts per remote call (first try included).
        single_base_timeout: First-attempt timeout (s) for single-entry calls.
        bulk_base_timeout: First-attempt timeout (s) for bulk calls.
        max_messages_per_session: Messages sent before the session is rotated.
        fallback_on_bulk_timeout: Return the original texts instead of raising
            when every bulk attempt times out.
    """
    max_attempts: int = 5
    single_base_timeout: float = 10.0
    bulk_base_timeout: float = 15.0
    max_messages_per_session: int = 5
    fallback_on_bulk_timeout: bool = False


@dataclass
class TranslationStats:
    """
    Counters for one Translator, shown in the run summary.

    Attributes:
        calls: Logical translate/translate_bulk calls that reached the endpoint.
        attempts: Attempts made across all calls (retries included).
        fallbacks: Calls that returned their original text.
        fallback_entries: Subtitle entries contained in those calls.
    """
    calls: int = 0
    attempts: int = 0
    fallbacks: int = 0
    fallback_entries: int = 0


class Translator:
    """
    Translates text through one endpoint, owning its session for the whole run.

    Use as a context manager (or call close()) so the session and the
    endpoint's client are released on every exit path.
    """

    def __init__(self, endpoint: TranslationEndpoint, settings: Optional[TranslatorSettings] = None) -> None:
        self.settings = settings or TranslatorSettings()
        self.endpoint = endpoint
        self.sessions = SessionManager(endpoint, self.settings.max_messages_per_session)
        self.stats = TranslationStats()
        self._single_policy = RetryPolicy(self.settings.max_attempts, self.settings.single_base_timeout)
        self._bulk_policy = RetryPolicy(self.settings.max_attempts, self.settings.bulk_base_timeout)

    def _send(self, session: TranslationSession, prompt: str, timeout: float) -> str:
        reply = self.endpoint.send(session.handle, prompt, timeout)
        if self.sessions.record_usage(session):
            self.sessions.invalidate(session)
        return reply

    def translate(self, text: str, target_language: str) -> str:
        """
        Translate a single subtitle text.

        Returns:
            The translation, or `text` itself when the reply was empty.

        Raises:
            TranslationTimeout: Every attempt timed out.
            TransportFault: The session kept failing until attempts ran out.
        """
        logger.debug("Sending text to endpoint for translation to %s", target_language)
        prompt = build_single_prompt(text, target_language)

        def attempt(session: TranslationSession, timeout: float) -> str:
            reply = self._send(session, prompt, timeout).strip()
            return reply or text

        result = run_with_retries(
            attempt, self.sessions, self._single_policy,
            fallback=text, label="Translation"
        )
        self._record(result, entries=1)
        logger.debug("Received translation result (length=%d)", len(result.value))
        return result.value

    def translate_bulk(self, texts: Sequence[str], target_language: str) -> List[str]:
        """
        Translate several subtitle texts in one remote call.

        Args:
            texts: Subtitle texts in order.
            target_language: Target language code.

        Returns:
            A list with the same length and order as `texts`. Entries the
            reply left out are "". When the reply stays malformed after every
            retry, or an unexpected error occurs, the original texts are
            returned unchanged.

        Raises:
            TranslationTimeout: Every attempt timed out.
            TransportFault: The session kept failing until attempts ran out.
        """
        originals = list(texts)
        if not originals:
            return []

        logger.debug(
            "Sending %d subtitle entries for bulk translation to %s",
            len(originals), target_language
        )
        prompt = build_bulk_prompt(originals, target_language)

        def attempt(session: TranslationSession, timeout: float) -> List[str]:
            reply = self._send(session, prompt, timeout)
            logger.debug("Received bulk translation response (length=%d)", len(reply))
            parsed = parse_bulk_response(reply, len(originals))
            if not parsed.ok:
                raise MalformedResponse(parsed.error)
            return parsed.texts

        try:
            result = run_with_retries(
                attempt, self.sessions, self._bulk_policy,
                fallback=originals, label="Bulk translation"
            )
        except TranslationTimeout:
            if not self.settings.fallback_on_bulk_timeout:
                raise
            logger.error("Bulk translation timed out on every attempt, keeping original texts")
            result = RetryResult(
                originals, Outcome.TIMEOUT, self.settings.max_attempts, fell_back=True
            )
        self._record(result, entries=len(originals))
        return list(result.value)

    def _record(self, result: RetryResult, entries: int) -> None:
        self.stats.calls += 1
        self.stats.attempts += result.attempts
        if result.fell_back:
            self.stats.fallbacks += 1
            self.stats.fallback_entries += entries

    def close(self) -> None:
        self.sessions.dispose()

    def __enter__(self) -> "Translator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# Called after each chunk with (chunk_number, chunk_count, entries_done)
ChunkCallback = Callable[[int, int, int], None]


def translate_all(
    entries: Sequence[SRTEntry],
    target_language: str,
    translator: Translator,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_chunk_done: Optional[ChunkCallback] = None,
) -> List[str]:
    """
    Translate every entry's text, chunk by chunk, preserving order.

    Chunks are processed strictly one after another through the same
    translator (and therefore the same rotating session).

    Args:
        entries: Subtitle entries in file order.
        target_language: Target language code.
        translator: Translator to use; the caller owns and closes it.
        chunk_size: Maximum entries per bulk call.
        on_chunk_done: Optional progress callback.

    Returns:
        One string per entry, aligned with `entries`.

    Raises:
        TranslationTimeout / TransportFault: A chunk failed fatally; the
            whole run is aborted and no partial result is returned.
    """
    total = len(entries)
    if total == 0:
        return []

    chunks = build_chunks(total, chunk_size)
    translated: List[Optional[str]] = [None] * total
    done = 0

    for number, (start, end) in enumerate(chunks, start=1):
        chunk_texts = [e.text for e in entries[start:end + 1]]
        logger.debug("Translating chunk %d/%d (entries %d-%d)", number, len(chunks), start + 1, end + 1)

        results = translator.translate_bulk(chunk_texts, target_language)
        if len(results) != len(chunk_texts):
            raise RuntimeError(
                f"Chunk {number} returned {len(results)} results for {len(chunk_texts)} entries"
            )

        for offset, text in enumerate(results):
            pos = start + offset
            if translated[pos] is not None:
                raise RuntimeError(f"Output slot {pos} written twice")
            translated[pos] = text

        done += len(chunk_texts)
        if on_chunk_done:
            on_chunk_done(number, len(chunks), done)

    unfilled = [i for i, t in enumerate(translated) if t is None]
    if unfilled:
        raise RuntimeError(f"Untranslated output slots after all chunks: {unfilled[:10]}")

    return [t for t in translated if t is not None]


def translate_entries(
    entries: Sequence[SRTEntry],
    target_language: str,
    translator: Translator,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_chunk_done: Optional[ChunkCallback] = None,
) -> List[SRTEntry]:
    """
    Like translate_all(), but returns entries with their original index and
    timing paired with the translated text.
    """
    texts = translate_all(entries, target_language, translator, chunk_size, on_chunk_done)
    return [replace(e, text=t) for e, t in zip(entries, texts)]
