#!/usr/bin/env python3
from __future__ import annotations

"""
Error types shared by the SubRelay translation engine.

Backends translate their library-specific exceptions into these classes at
the boundary, so the retry controller only ever has to reason about:
- TranslationTimeout  → the attempt exceeded its deadline.
- TransportFault      → the session or connection is gone (e.g. "session not found").
- MalformedResponse   → a reply arrived but no structured data could be recovered.
Anything else is treated as an unexpected failure.
"""


class TranslationError(Exception):
    """Base class for all translation engine errors."""


class TranslationTimeout(TranslationError):
    """A remote call did not answer within its per-attempt timeout."""


class TransportFault(TranslationError):
    """The remote session or the connection to it failed."""


class MalformedResponse(TranslationError):
    """The remote reply could not be parsed into the expected structure."""
