#!/usr/bin/env python3
from __future__ import annotations

"""
Session lifecycle for SubRelay.

A SessionManager owns the single live conversation with the remote
endpoint for one translation run:
- acquire()       → current session, created lazily.
- record_usage()  → count a sent message; True once the quota is reached.
- invalidate()    → dispose the current session; the next acquire() opens a fresh one.
- dispose()       → release the session and the endpoint's client resources.

Disposal errors are logged and swallowed: releasing a broken session must
never abort the operation that triggered the rotation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from subrelay_lib.llm_adapter import TranslationEndpoint

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES_PER_SESSION = 5


@dataclass
class TranslationSession:
    """
    An endpoint session handle plus its usage counter.

    Attributes:
        handle: Opaque object returned by the endpoint's create_session().
        serial: 1-based creation number within the manager (for logging/tests).
        messages_sent: Messages sent through this session so far.
    """
    handle: Any
    serial: int
    messages_sent: int = 0


class SessionManager:
    """
    Owns at most one live TranslationSession and rotates it on demand.
    """

    def __init__(
        self,
        endpoint: TranslationEndpoint,
        max_messages_per_session: int = DEFAULT_MAX_MESSAGES_PER_SESSION,
    ) -> None:
        if max_messages_per_session < 1:
            raise ValueError("max_messages_per_session must be at least 1")
        self.endpoint = endpoint
        self.max_messages_per_session = max_messages_per_session
        self.sessions_created = 0
        self._current: Optional[TranslationSession] = None
        self._disposed = False

    @property
    def current(self) -> Optional[TranslationSession]:
        return self._current

    def acquire(self) -> TranslationSession:
        """
        Return the live session, creating one if none exists.

        Raises:
            RuntimeError: If the manager has already been disposed.
            TranslationError: Whatever the endpoint raises while creating a session.
        """
        if self._disposed:
            raise RuntimeError("SessionManager has been disposed")
        if self._current is None:
            handle = self.endpoint.create_session()
            self.sessions_created += 1
            self._current = TranslationSession(handle=handle, serial=self.sessions_created)
            logger.debug("Created new session #%d", self._current.serial)
        return self._current

    def record_usage(self, session: TranslationSession) -> bool:
        """
        Count one message sent through `session`.

        Returns:
            True when the session has reached its quota and must be rotated.
        """
        session.messages_sent += 1
        if session.messages_sent >= self.max_messages_per_session:
            logger.info(
                "Reached %d messages on session #%d, rotating...",
                self.max_messages_per_session, session.serial
            )
            return True
        return False

    def invalidate(self, session: Optional[TranslationSession] = None) -> None:
        """
        Dispose the current session and clear it.

        Passing a session that is no longer current is a no-op, so a stale
        handle from an earlier attempt can never close its replacement.
        """
        current = self._current
        if current is None:
            return
        if session is not None and session is not current:
            return
        self._current = None
        self._close_handle(current)

    def dispose(self) -> None:
        """
        Release the current session and the endpoint. Safe to call twice.
        """
        if self._disposed:
            return
        self._disposed = True
        self.invalidate()
        try:
            self.endpoint.close()
        except Exception as e:
            logger.warning("Error closing endpoint (ignored): %s", e)
        logger.debug("Session manager disposed after %d session(s)", self.sessions_created)

    def _close_handle(self, session: TranslationSession) -> None:
        try:
            self.endpoint.close_session(session.handle)
            logger.debug("Closed session #%d", session.serial)
        except Exception as e:
            logger.debug("Error disposing session #%d (ignored): %s", session.serial, e)

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
