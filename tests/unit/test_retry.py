"""
Unit tests for failure classification and the retrying requester
"""

import httpx
import pytest
from ingestion.retry import (
    AttemptOutcome,
    FailureKind,
    RetryingRequester,
    classify,
    parse_retry_after,
)
from ingestion.transport import RateLimitedTransport
from core.exceptions import (
    PermanentError,
    RateLimitError,
    RetriesExhaustedError,
    TransientError,
)


def _response(status_code, **kwargs):
    return httpx.Response(status_code, request=httpx.Request("GET", "https://jira.test/x"), **kwargs)


def _scripted_handler(responses, calls):
    """Answer each request with the next scripted response (or raise it)"""
    def handler(request):
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)
    return handler


@pytest.fixture
def make_requester(mock_http_client, fake_clock):
    def _make(responses, calls, **kwargs):
        client = mock_http_client(_scripted_handler(responses, calls))
        transport = RateLimitedTransport(max_requests=1000, clock=fake_clock, sleep=fake_clock.sleep)
        return RetryingRequester(client, transport, sleep=fake_clock.sleep, **kwargs)
    return _make


class TestClassify:
    """One classification per outcome"""

    def test_success(self):
        assert classify(AttemptOutcome(response=_response(200, json={}))).ok

    def test_rate_limited_uses_retry_after(self):
        verdict = classify(AttemptOutcome(response=_response(429, headers={"Retry-After": "7"})))
        assert verdict.kind == FailureKind.RATE_LIMITED
        assert verdict.wait == 7.0

    def test_rate_limited_default_wait(self):
        verdict = classify(AttemptOutcome(response=_response(429)), default_rate_limit_wait=60.0)
        assert verdict.wait == 60.0

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 408])
    def test_server_errors_are_transient(self, status):
        assert classify(AttemptOutcome(response=_response(status))).kind == FailureKind.TRANSIENT

    def test_not_found(self):
        assert classify(AttemptOutcome(response=_response(404))).kind == FailureKind.NOT_FOUND

    @pytest.mark.parametrize("status", [400, 401, 403, 410])
    def test_client_errors_are_permanent(self, status):
        verdict = classify(AttemptOutcome(response=_response(status, json={"errorMessages": ["bad jql"]})))
        assert verdict.kind == FailureKind.PERMANENT
        assert not verdict.retryable

    def test_timeout_is_transient(self):
        verdict = classify(AttemptOutcome(error=httpx.ReadTimeout("timed out")))
        assert verdict.kind == FailureKind.TRANSIENT
        assert verdict.retryable

    def test_connection_error_is_transient(self):
        assert classify(AttemptOutcome(error=httpx.ConnectError("refused"))).kind == FailureKind.TRANSIENT

    def test_unsupported_protocol_is_permanent(self):
        assert classify(AttemptOutcome(error=httpx.UnsupportedProtocol("ftp"))).kind == FailureKind.PERMANENT

    def test_parse_retry_after(self):
        assert parse_retry_after("2", 60.0) == 2.0
        assert parse_retry_after(None, 60.0) == 60.0
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", 60.0) == 60.0
        assert parse_retry_after("-1", 60.0) == 60.0

    def test_parse_retry_after_rejects_non_finite(self):
        assert parse_retry_after("inf", 60.0) == 60.0
        assert parse_retry_after("Infinity", 60.0) == 60.0
        assert parse_retry_after("nan", 60.0) == 60.0
        assert parse_retry_after("1.5", 60.0) == 1.5


class TestRetryingRequester:
    """Retry loop driven through httpx.MockTransport"""

    @pytest.mark.asyncio
    async def test_success_returns_decoded_json(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([_response(200, json={"issues": [], "total": 0})], calls)

        data = await requester.request("/search", {"jql": "project = KAFKA"})

        assert data == {"issues": [], "total": 0}
        assert len(calls) == 1
        assert calls[0].url.params["jql"] == "project = KAFKA"
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_429_waits_retry_after_then_succeeds(self, make_requester, fake_clock):
        calls = []
        requester = make_requester(
            [_response(429, headers={"Retry-After": "2"}), _response(200, json={"ok": True})],
            calls
        )

        data = await requester.request("/search")

        assert data == {"ok": True}
        assert len(calls) == 2
        assert fake_clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_404_returns_none_without_retry(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([_response(404)], calls)

        assert await requester.request("/project/NOPE") is None
        assert len(calls) == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_400_raises_permanent_without_retry(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([_response(400, json={"errorMessages": ["Field 'x' does not exist"]})], calls)

        with pytest.raises(PermanentError) as exc_info:
            await requester.request("/search")

        assert len(calls) == 1
        assert fake_clock.sleeps == []
        assert exc_info.value.context["status_code"] == 400
        assert "Field 'x' does not exist" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_503_retries_with_doubling_backoff(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([_response(503)], calls, max_retries=3, base_delay=1.0, max_delay=10.0)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await requester.request("/search")

        assert len(calls) == 4
        assert fake_clock.sleeps == [1.0, 2.0, 4.0]
        assert isinstance(exc_info.value.last_error, TransientError)
        assert exc_info.value.context["attempts"] == 4

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([_response(500)], calls, max_retries=5, base_delay=1.0, max_delay=10.0)

        with pytest.raises(RetriesExhaustedError):
            await requester.request("/search")

        assert fake_clock.sleeps == [1.0, 2.0, 4.0, 8.0, 10.0]

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([httpx.ReadTimeout("slow"), _response(200, json=[1, 2])], calls)

        assert await requester.request("/project") == [1, 2]
        assert len(calls) == 2
        assert fake_clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_persistent_429_surfaces_rate_limit_error(self, make_requester, fake_clock):
        calls = []
        requester = make_requester([_response(429, headers={"Retry-After": "3"})], calls, max_retries=2)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await requester.request("/search")

        assert isinstance(exc_info.value.last_error, RateLimitError)
        assert exc_info.value.last_error.retry_after == 3.0
        assert fake_clock.sleeps == [3.0, 3.0]

    @pytest.mark.asyncio
    async def test_undecodable_body_is_permanent(self, make_requester):
        calls = []
        requester = make_requester([_response(200, text="<html>maintenance</html>")], calls)

        with pytest.raises(PermanentError, match="parse JSON"):
            await requester.request("/search")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_stats_count_requests_errors_and_retries(self, make_requester):
        calls = []
        requester = make_requester([_response(502), _response(200, json={})], calls)

        await requester.request("/search")
        stats = requester.stats()

        assert stats.request_count == 2
        assert stats.error_count == 1
        assert stats.retry_count == 1
        assert stats.in_flight == 0
        assert stats.queue_size == 0
