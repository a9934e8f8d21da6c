import json
from collections import deque
from itertools import count

import pytest

from subrelay_lib.llm_adapter import TranslationEndpoint
from subrelay_lib.translator import Translator, TranslatorSettings


def bulk_reply(texts, template="{}"):
    """JSON array reply in the format the bulk prompt asks for."""
    return json.dumps([
        {"index": i, "translated": template.format(t)}
        for i, t in enumerate(texts, start=1)
    ])


class FakeEndpoint(TranslationEndpoint):
    """
    Scripted endpoint. Each send() pops the next scripted item: a string is
    returned, an exception is raised, a callable is called with the prompt.
    When the script is empty, `default` (a callable) answers.
    """

    def __init__(self, script=(), default=None):
        self.script = deque(script)
        self.default = default
        self._ids = count(1)
        self.created = []
        self.closed_sessions = []
        self.sent = []
        self.closed = 0

    def create_session(self):
        handle = f"session-{next(self._ids)}"
        self.created.append(handle)
        return handle

    def send(self, handle, prompt, timeout):
        self.sent.append((handle, prompt, timeout))
        if self.script:
            item = self.script.popleft()
        elif self.default is not None:
            item = self.default
        else:
            raise AssertionError("FakeEndpoint ran out of scripted replies")
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(prompt)
        return item

    def close_session(self, handle):
        self.closed_sessions.append(handle)

    def close(self):
        self.closed += 1


def echo_bulk(prompt):
    """Answer a bulk prompt by prefixing every numbered entry with "T:"."""
    body = prompt.split("Subtitle entries to translate:", 1)[1].strip()
    texts = [line.split(". ", 1)[1] for line in body.splitlines()]
    return bulk_reply(texts, "T:{}")


@pytest.fixture
def endpoint():
    return FakeEndpoint(default=echo_bulk)


@pytest.fixture
def fast_settings():
    # Real timeouts are never waited on by the fake endpoint; only the values are checked
    return TranslatorSettings(max_attempts=5, single_base_timeout=10.0, bulk_base_timeout=15.0)


@pytest.fixture
def translator(endpoint, fast_settings):
    with Translator(endpoint, fast_settings) as t:
        yield t
