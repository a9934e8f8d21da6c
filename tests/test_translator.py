import pytest

from conftest import FakeEndpoint, bulk_reply, echo_bulk
from subrelay_lib.errors import MalformedResponse, TranslationTimeout, TransportFault
from subrelay_lib.srt_utils import SRTEntry
from subrelay_lib.translator import (
    Translator,
    TranslatorSettings,
    translate_all,
    translate_entries,
)


def make_entries(n):
    return [
        SRTEntry(idx=i, start=f"00:00:{i:02d},000", end=f"00:00:{i:02d},900", text=f"line {i}")
        for i in range(1, n + 1)
    ]


def test_single_translation_returns_stripped_reply(fast_settings):
    ep = FakeEndpoint(["  Hola  \n"])
    with Translator(ep, fast_settings) as t:
        assert t.translate("Hello", "es") == "Hola"
    assert ep.sent[0][2] == 10.0
    assert "Hello" in ep.sent[0][1]


def test_single_translation_empty_reply_returns_original(fast_settings):
    with Translator(FakeEndpoint([""]), fast_settings) as t:
        assert t.translate("Hello", "es") == "Hello"


def test_single_translation_timeout_exhaustion_is_fatal(fast_settings):
    ep = FakeEndpoint([TranslationTimeout()] * 5)
    t = Translator(ep, fast_settings)
    with pytest.raises(TranslationTimeout):
        t.translate("Hello", "es")
    assert [timeout for _, _, timeout in ep.sent] == [10.0, 20.0, 40.0, 80.0, 160.0]
    t.close()
    assert ep.closed == 1


def test_bulk_preserves_length_and_order(translator, endpoint):
    texts = ["one", "two", "three"]
    assert translator.translate_bulk(texts, "fr") == ["T:one", "T:two", "T:three"]
    assert endpoint.sent[0][2] == 15.0


def test_bulk_empty_input_makes_no_remote_call(translator, endpoint):
    assert translator.translate_bulk([], "fr") == []
    assert endpoint.sent == []
    assert endpoint.created == []


def test_bulk_gap_fills_missing_items(fast_settings):
    reply = '[{"index": 2, "translated": "deux"}]'
    with Translator(FakeEndpoint([reply]), fast_settings) as t:
        assert t.translate_bulk(["un", "deux", "trois"], "fr") == ["", "deux", ""]


def test_bulk_recovers_after_malformed_reply(fast_settings):
    ep = FakeEndpoint(["Sorry, I can't do that.", bulk_reply(["uno"])])
    with Translator(ep, fast_settings) as t:
        assert t.translate_bulk(["one"], "es") == ["uno"]
        assert t.stats.fallbacks == 0
    assert [timeout for _, _, timeout in ep.sent] == [15.0, 30.0]
    assert len(ep.created) == 2


def test_bulk_malformed_exhaustion_returns_originals(fast_settings):
    ep = FakeEndpoint(["no json here"] * 5)
    with Translator(ep, fast_settings) as t:
        assert t.translate_bulk(["a", "b"], "es") == ["a", "b"]
        assert t.stats.fallbacks == 1
        assert t.stats.fallback_entries == 2


def test_bulk_unexpected_error_returns_originals(fast_settings):
    ep = FakeEndpoint([KeyError("weird")])
    with Translator(ep, fast_settings) as t:
        assert t.translate_bulk(["a"], "es") == ["a"]
    assert len(ep.sent) == 1


def test_bulk_timeout_exhaustion_is_fatal_by_default(fast_settings):
    ep = FakeEndpoint([TranslationTimeout()] * 5)
    with Translator(ep, fast_settings) as t:
        with pytest.raises(TranslationTimeout):
            t.translate_bulk(["a"], "es")
    assert ep.closed == 1


def test_bulk_timeout_exhaustion_can_fall_back():
    settings = TranslatorSettings(fallback_on_bulk_timeout=True)
    ep = FakeEndpoint([TranslationTimeout()] * 5)
    with Translator(ep, settings) as t:
        assert t.translate_bulk(["a", "b"], "es") == ["a", "b"]
        assert t.stats.fallbacks == 1


def test_bulk_transport_exhaustion_is_fatal(fast_settings):
    ep = FakeEndpoint([TransportFault("session not found")] * 5)
    with Translator(ep, fast_settings) as t:
        with pytest.raises(TransportFault):
            t.translate_bulk(["a"], "es")


def test_session_rotates_after_five_messages(translator, endpoint):
    for i in range(12):
        translator.translate_bulk([f"text {i}"], "de")
    handles = [handle for handle, _, _ in endpoint.sent]
    assert handles == ["session-1"] * 5 + ["session-2"] * 5 + ["session-3"] * 2
    assert endpoint.closed_sessions == ["session-1", "session-2"]


def test_translate_all_23_entries_with_malformed_second_chunk(fast_settings):
    entries = make_entries(23)

    def reply(prompt):
        # Chunk 2 carries entries 11-20
        if "line 11" in prompt:
            return "this is not json"
        return echo_bulk(prompt)

    ep = FakeEndpoint(default=reply)
    progress = []
    with Translator(ep, fast_settings) as t:
        result = translate_all(
            entries, "es", t, chunk_size=10,
            on_chunk_done=lambda n, total, done: progress.append((n, total, done)),
        )
        assert t.stats.fallbacks == 1
        assert t.stats.fallback_entries == 10

    assert len(result) == 23
    assert result[:10] == [f"T:line {i}" for i in range(1, 11)]
    assert result[10:20] == [f"line {i}" for i in range(11, 21)]
    assert result[20:] == [f"T:line {i}" for i in range(21, 24)]
    assert progress == [(1, 3, 10), (2, 3, 20), (3, 3, 23)]
    # 1 call for chunk 1, 5 attempts for chunk 2, 1 call for chunk 3
    assert len(ep.sent) == 7
    assert ep.closed == 1


def test_translate_all_zero_entries(translator, endpoint):
    assert translate_all([], "es", translator) == []
    assert endpoint.sent == []


def test_translate_all_fatal_chunk_aborts_run(fast_settings):
    entries = make_entries(15)

    def reply(prompt):
        if "line 11" in prompt:
            raise TranslationTimeout()
        return echo_bulk(prompt)

    ep = FakeEndpoint(default=reply)
    with pytest.raises(TranslationTimeout):
        with Translator(ep, fast_settings) as t:
            translate_all(entries, "es", t, chunk_size=10)
    assert ep.closed == 1
    assert ep.created[-1] in ep.closed_sessions


def test_translate_entries_keeps_index_and_timing(translator):
    entries = make_entries(3)
    out = translate_entries(entries, "es", translator, chunk_size=2)
    assert [(e.idx, e.start, e.end) for e in out] == [(e.idx, e.start, e.end) for e in entries]
    assert [e.text for e in out] == ["T:line 1", "T:line 2", "T:line 3"]


def test_malformed_response_is_not_raised_to_caller(fast_settings):
    ep = FakeEndpoint([MalformedResponse("bad")] * 5)
    with Translator(ep, fast_settings) as t:
        assert t.translate_bulk(["x"], "es") == ["x"]
