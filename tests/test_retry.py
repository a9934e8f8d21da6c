import pytest

from conftest import FakeEndpoint
from subrelay_lib.errors import MalformedResponse, TranslationTimeout, TransportFault
from subrelay_lib.retry import Outcome, RetryPolicy, classify, run_with_retries
from subrelay_lib.session_manager import SessionManager


def make_work(endpoint):
    def work(session, timeout):
        return endpoint.send(session.handle, "prompt", timeout)
    return work


def test_timeouts_double_per_attempt():
    policy = RetryPolicy(max_attempts=5, base_timeout=15.0)
    assert [policy.timeout_for(k) for k in range(5)] == [15.0, 30.0, 60.0, 120.0, 240.0]


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"base_timeout": 0}])
def test_policy_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_classify():
    assert classify(None) is Outcome.SUCCESS
    assert classify(TranslationTimeout()) is Outcome.TIMEOUT
    assert classify(TransportFault()) is Outcome.TRANSPORT
    assert classify(MalformedResponse()) is Outcome.MALFORMED
    assert classify(KeyError("x")) is Outcome.UNEXPECTED


def test_success_after_retries_rotates_session_each_time():
    ep = FakeEndpoint([TranslationTimeout(), TransportFault(), "ok"])
    sessions = SessionManager(ep)
    result = run_with_retries(make_work(ep), sessions, RetryPolicy(5, 10.0), fallback="orig")
    assert result.value == "ok"
    assert result.attempts == 3
    assert not result.fell_back
    assert [timeout for _, _, timeout in ep.sent] == [10.0, 20.0, 40.0]
    assert [handle for handle, _, _ in ep.sent] == ["session-1", "session-2", "session-3"]
    assert ep.closed_sessions == ["session-1", "session-2"]


def test_timeout_exhaustion_raises():
    ep = FakeEndpoint([TranslationTimeout()] * 3)
    sessions = SessionManager(ep)
    with pytest.raises(TranslationTimeout):
        run_with_retries(make_work(ep), sessions, RetryPolicy(3, 1.0), fallback="orig")
    assert len(ep.sent) == 3
    assert sessions.current is None


def test_transport_exhaustion_raises():
    ep = FakeEndpoint([TransportFault("session not found")] * 2)
    with pytest.raises(TransportFault):
        run_with_retries(make_work(ep), SessionManager(ep), RetryPolicy(2, 1.0), fallback="orig")


def test_malformed_exhaustion_falls_back():
    ep = FakeEndpoint([MalformedResponse()] * 5)
    result = run_with_retries(make_work(ep), SessionManager(ep), RetryPolicy(5, 1.0), fallback="orig")
    assert result.value == "orig"
    assert result.fell_back
    assert result.outcome is Outcome.MALFORMED
    assert result.attempts == 5
    assert len(ep.created) == 5


def test_unexpected_error_falls_back_without_retrying():
    ep = FakeEndpoint([ValueError("boom"), "never sent"])
    sessions = SessionManager(ep)
    result = run_with_retries(make_work(ep), sessions, RetryPolicy(5, 1.0), fallback="orig")
    assert result.value == "orig"
    assert result.outcome is Outcome.UNEXPECTED
    assert result.attempts == 1
    assert len(ep.sent) == 1


def test_session_creation_failure_is_retried():
    class FlakyCreate(FakeEndpoint):
        def __init__(self):
            super().__init__(["ok"])
            self.failures = 1

        def create_session(self):
            if self.failures:
                self.failures -= 1
                raise TransportFault("cannot open conversation")
            return super().create_session()

    ep = FlakyCreate()
    result = run_with_retries(make_work(ep), SessionManager(ep), RetryPolicy(5, 1.0), fallback="orig")
    assert result.value == "ok"
    assert result.attempts == 2
