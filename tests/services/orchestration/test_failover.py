"""
FailoverOrchestrator 测试

使用真实的 CredentialPool + RequestDispatcher，上游由 RecordingUpstream 按凭证返回预设响应。
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from src.core.exceptions import CredentialRelatedError
from src.services.credential import CredentialPool, CredentialState
from src.services.orchestration import (
    DispatchOutcome,
    ErrorClassification,
    FailoverOrchestrator,
    RequestDescriptor,
    RequestDispatcher,
)

URL = "https://upstream.example.com/v1/chat/completions"


def _descriptor() -> RequestDescriptor:
    return RequestDescriptor(url=URL, body={"model": "m", "messages": [], "stream": False})


def _orchestrator(config_string: str, upstream, clock=None) -> FailoverOrchestrator:
    kwargs = {"clock": clock} if clock is not None else {}
    pool = CredentialPool(config_string, **kwargs)
    return FailoverOrchestrator(pool, RequestDispatcher(upstream.client()))


class TestExplicitCredential:
    @pytest.mark.asyncio
    async def test_explicit_credential_bypasses_pool(self, upstream) -> None:
        orchestrator = _orchestrator("A,B", upstream)

        outcome = await orchestrator.dispatch(_descriptor(), "user-key-123")

        assert outcome.success is True
        assert upstream.used_secrets == ["user-key-123"]
        assert [item.failure_count for item in orchestrator.snapshot()] == [0, 0]

    @pytest.mark.asyncio
    async def test_explicit_credential_failure_is_returned_verbatim(self, upstream) -> None:
        upstream.responses["user-key-123"] = httpx.Response(401, text="invalid api key")
        orchestrator = _orchestrator("A,B", upstream)

        outcome = await orchestrator.dispatch(_descriptor(), "user-key-123")

        assert outcome.success is False
        assert outcome.classification == ErrorClassification.CREDENTIAL_RELATED
        assert outcome.error == "HTTP 401: invalid api key"
        assert len(upstream.requests) == 1
        assert all(item.failure_count == 0 for item in orchestrator.snapshot())

    @pytest.mark.asyncio
    async def test_explicit_credential_works_with_empty_pool(self, upstream) -> None:
        orchestrator = _orchestrator("", upstream)

        outcome = await orchestrator.dispatch(_descriptor(), "user-key-123")

        assert outcome.success is True
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_explicit_credential_ignores_suspended_pool(self, upstream) -> None:
        orchestrator = _orchestrator("A", upstream)
        credential = orchestrator.pool.next_working()
        for _ in range(3):
            orchestrator.pool.report_failure(credential)  # type: ignore[arg-type]

        outcome = await orchestrator.dispatch(_descriptor(), "user-key-123")

        assert outcome.success is True
        assert upstream.used_secrets == ["user-key-123"]


class TestPoolDispatch:
    @pytest.mark.asyncio
    async def test_empty_pool_returns_configuration_error_without_network(self, upstream) -> None:
        orchestrator = _orchestrator("", upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert orchestrator.count_reachable() == 0
        assert outcome.success is False
        assert outcome.error == "no credential configured"
        assert outcome.error_type == "ConfigurationError"
        assert outcome.classification == ErrorClassification.FATAL
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, upstream) -> None:
        orchestrator = _orchestrator("A,B,C", upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.success is True
        assert outcome.attempts == 1
        assert upstream.used_secrets == ["A"]

    @pytest.mark.asyncio
    async def test_credential_error_rotates_to_next(self, upstream) -> None:
        upstream.responses["A"] = httpx.Response(401, text="invalid api key")
        orchestrator = _orchestrator("A,B,C", upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.success is True
        assert outcome.attempts == 2
        assert upstream.used_secrets == ["A", "B"]
        assert [item.failure_count for item in orchestrator.snapshot()] == [1, 0, 0]

    @pytest.mark.asyncio
    async def test_fatal_error_stops_immediately(self, upstream) -> None:
        upstream.responses["A"] = httpx.Response(500, text="internal error")
        orchestrator = _orchestrator("A,B,C", upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.success is False
        assert outcome.error == "HTTP 500: internal error"
        assert outcome.classification == ErrorClassification.FATAL
        assert upstream.used_secrets == ["A"]
        assert [item.failure_count for item in orchestrator.snapshot()] == [0, 0, 0]

    @pytest.mark.asyncio
    async def test_timeout_does_not_rotate(self, upstream) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        upstream.responses["A"] = slow
        orchestrator = _orchestrator("A,B", upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.error == "request timed out"
        assert outcome.error_type == "RequestTimeoutError"
        assert upstream.used_secrets == ["A"]

    @pytest.mark.asyncio
    async def test_all_credentials_exhausted(self, upstream) -> None:
        secrets = ["key-aaaa-1111", "key-bbbb-2222", "key-cccc-3333"]
        upstream.responses[secrets[0]] = httpx.Response(401, text="invalid api key")
        upstream.responses[secrets[1]] = httpx.Response(403, text="forbidden")
        upstream.responses[secrets[2]] = httpx.Response(429, text="Rate limit exceeded for project")
        orchestrator = _orchestrator(",".join(secrets), upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.success is False
        assert outcome.error_type == "PoolExhaustedError"
        assert outcome.classification == ErrorClassification.FATAL
        assert outcome.error == "all credentials exhausted: HTTP 429: Rate limit exceeded for project"
        assert outcome.attempts == 3
        assert upstream.used_secrets == secrets

    @pytest.mark.asyncio
    async def test_exhaustion_message_masks_echoed_secret(self, upstream) -> None:
        secret = "key-cccc-3333"
        upstream.responses[secret] = httpx.Response(429, text=f"Rate limit exceeded for {secret}")
        orchestrator = _orchestrator(secret, upstream)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.error == "all credentials exhausted: HTTP 429: Rate limit exceeded for key-cc..."
        assert secret not in (outcome.error or "")

    @pytest.mark.asyncio
    async def test_repeated_exhaustion_suspends_and_then_reports_no_working_credential(
        self, upstream, clock
    ) -> None:
        for secret in "AB":
            upstream.responses[secret] = httpx.Response(401, text="unauthorized")
        orchestrator = _orchestrator("A,B", upstream, clock=clock)

        for _ in range(3):
            outcome = await orchestrator.dispatch(_descriptor())
            assert outcome.error_type == "PoolExhaustedError"

        assert all(item.state == CredentialState.SUSPENDED for item in orchestrator.snapshot())
        calls_before = len(upstream.requests)

        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.error == "no working credential available"
        assert outcome.error_type == "PoolExhaustedError"
        assert len(upstream.requests) == calls_before

    @pytest.mark.asyncio
    async def test_suspended_credential_recovers_after_cooldown(self, upstream, clock) -> None:
        upstream.responses["A"] = httpx.Response(401, text="unauthorized")
        orchestrator = _orchestrator("A,B", upstream, clock=clock)
        a = orchestrator.pool._credentials[0]
        for _ in range(3):
            orchestrator.pool.report_failure(a)

        await orchestrator.dispatch(_descriptor())
        assert upstream.used_secrets == ["B"]

        clock.advance(60)
        del upstream.responses["A"]
        await orchestrator.dispatch(_descriptor())
        await orchestrator.dispatch(_descriptor())

        assert "A" in upstream.used_secrets[1:]
        assert a.state == CredentialState.ACTIVE

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, upstream) -> None:
        upstream.responses["A"] = httpx.Response(401, text="unauthorized")
        orchestrator = _orchestrator("A", upstream)

        await orchestrator.dispatch(_descriptor())
        assert orchestrator.snapshot()[0].failure_count == 1

        del upstream.responses["A"]
        outcome = await orchestrator.dispatch(_descriptor())

        assert outcome.success is True
        assert orchestrator.snapshot()[0].failure_count == 0

    @pytest.mark.asyncio
    async def test_attempts_are_sequential(self) -> None:
        in_flight = 0
        peak = 0

        async def execute(descriptor, secret):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return DispatchOutcome.failure(
                "HTTP 401: unauthorized",
                ErrorClassification.CREDENTIAL_RELATED,
                CredentialRelatedError,
            )

        dispatcher = AsyncMock(spec=RequestDispatcher)
        dispatcher.execute.side_effect = execute
        orchestrator = FailoverOrchestrator(CredentialPool("A,B,C"), dispatcher)

        await orchestrator.dispatch(_descriptor())

        assert dispatcher.execute.await_count == 3
        assert peak == 1

    @pytest.mark.asyncio
    async def test_cancel_event_stops_before_next_attempt(self, upstream) -> None:
        cancel = asyncio.Event()

        def reject_and_cancel(request: httpx.Request) -> httpx.Response:
            cancel.set()
            return httpx.Response(401, text="unauthorized")

        upstream.responses["A"] = reject_and_cancel
        orchestrator = _orchestrator("A,B,C", upstream)

        outcome = await orchestrator.dispatch(_descriptor(), cancel_event=cancel)

        assert outcome.error == "request cancelled"
        assert outcome.attempts == 1
        assert upstream.used_secrets == ["A"]


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_uses_single_credential_without_retry(self, upstream) -> None:
        upstream.responses["A"] = httpx.Response(401, text="invalid api key")
        orchestrator = _orchestrator("A,B", upstream)

        outcome = await orchestrator.open_stream(_descriptor())

        assert outcome.success is False
        assert outcome.classification == ErrorClassification.CREDENTIAL_RELATED
        assert upstream.used_secrets == ["A"]
        assert orchestrator.snapshot()[0].failure_count == 1

    @pytest.mark.asyncio
    async def test_stream_with_explicit_credential(self, upstream) -> None:
        orchestrator = _orchestrator("A", upstream)

        outcome = await orchestrator.open_stream(_descriptor(), "user-key-123")

        assert outcome.success is True
        assert upstream.used_secrets == ["user-key-123"]
        await outcome.payload.aclose()

    @pytest.mark.asyncio
    async def test_stream_with_empty_pool(self, upstream) -> None:
        orchestrator = _orchestrator("", upstream)

        outcome = await orchestrator.open_stream(_descriptor())

        assert outcome.error_type == "ConfigurationError"
        assert upstream.requests == []
