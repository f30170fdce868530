"""
Engine Tests
============
End-to-end behaviour of request / verify / trust across purposes.
"""

import asyncio

import pytest

from conftest import RecordingNotifier, wrong_code
from stepup_core.config import PurposePolicy
from stepup_core.engine import StepUpEngine
from stepup_core.errors import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    CodeMismatchError,
    DeliveryFailedError,
    LockedOutError,
    RateLimitedError,
    StoreUnavailableError,
    UnknownChannelError,
    UnknownPurposeError,
)
from stepup_core.otp import OtpChannel
from stepup_core.scope import FingerprintContext
from stepup_core.store import InMemoryStore

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TestRequestAndVerify:
    """Happy paths and replay."""

    @pytest.mark.asyncio
    async def test_verify_grants_trust(self, engine, notifier, store, clock):
        """Correct code yields Ok and trust until the trust TTL elapses."""
        issued = await engine.request_challenge("audio", "a@x.io", "a@x.io")
        assert issued.expires_in_seconds == 300
        assert await engine.check_trust("audio", "a@x.io") is False

        result = await engine.submit_verification("audio", "a@x.io", notifier.last_code)

        assert result.verified_until == clock.now + 600
        assert result.channel == OtpChannel.EMAIL
        assert await engine.check_trust("audio", "a@x.io") is True

        clock.advance(599)
        assert await engine.check_trust("audio", "a@x.io") is True
        clock.advance(1)
        assert await engine.check_trust("audio", "a@x.io") is False
        trust_key = engine.trust.get_key(engine.scope_key("audio", "a@x.io"))
        assert store.raw_get(trust_key) is None

    @pytest.mark.asyncio
    async def test_replay_after_success_is_not_found(self, engine, notifier):
        """A consumed challenge cannot be reused."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        code = notifier.last_code
        await engine.submit_verification("audio", "a@x.io", code)

        with pytest.raises(ChallengeNotFoundError):
            await engine.submit_verification("audio", "a@x.io", code)

    @pytest.mark.asyncio
    async def test_verify_without_challenge(self, engine):
        """Verifying before any issuance fails with NotFound."""
        with pytest.raises(ChallengeNotFoundError):
            await engine.submit_verification("audio", "a@x.io", "123456")

    @pytest.mark.asyncio
    async def test_code_with_whitespace_accepted(self, engine, notifier):
        """Submitted codes are stripped."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        await engine.submit_verification("audio", "a@x.io", f"  {notifier.last_code}\n")

        assert await engine.check_trust("audio", "a@x.io") is True

    @pytest.mark.asyncio
    async def test_expired_challenge(self, engine, notifier, clock):
        """Verifying after the challenge TTL fails."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        clock.advance(301)

        with pytest.raises((ChallengeExpiredError, ChallengeNotFoundError)):
            await engine.submit_verification("audio", "a@x.io", notifier.last_code)

    @pytest.mark.asyncio
    async def test_subject_follows_purpose(self, engine, notifier):
        """Each purpose sends with its own subject line."""
        await engine.request_challenge("login", "u1", "u1@x.io")
        await engine.request_challenge("audio", "a@x.io", "a@x.io")

        assert notifier.sent[0][3] == "Login Verification"
        assert notifier.sent[1][3] == "Audio Tweet OTP"


class TestLockout:
    """Attempt ceiling behaviour."""

    @pytest.mark.asyncio
    async def test_fifth_wrong_code_locks_out(self, engine, notifier):
        """5 wrong codes -> 5th LockedOut; then correct code -> NotFound."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        code = notifier.last_code

        for expected_remaining in (4, 3, 2, 1):
            with pytest.raises(CodeMismatchError) as exc_info:
                await engine.submit_verification("audio", "a@x.io", wrong_code(code))
            assert exc_info.value.attempts_remaining == expected_remaining

        with pytest.raises(LockedOutError):
            await engine.submit_verification("audio", "a@x.io", wrong_code(code))

        with pytest.raises(ChallengeNotFoundError):
            await engine.submit_verification("audio", "a@x.io", code)
        assert await engine.check_trust("audio", "a@x.io") is False

    @pytest.mark.asyncio
    async def test_failed_attempts_do_not_extend_expiry(self, engine, notifier, clock):
        """Guessing keeps the absolute expiry fixed at issuance."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        code = notifier.last_code

        clock.advance(200)
        with pytest.raises(CodeMismatchError):
            await engine.submit_verification("audio", "a@x.io", wrong_code(code))

        clock.advance(101)
        with pytest.raises((ChallengeExpiredError, ChallengeNotFoundError)):
            await engine.submit_verification("audio", "a@x.io", code)

    @pytest.mark.asyncio
    async def test_login_lockout_blocks_reissue(self, engine, notifier, clock):
        """Login lockout applies an issuance cool-down."""
        ctx = FingerprintContext(ip_address="203.0.113.9", user_agent=CHROME_UA)
        await engine.request_challenge("login", "u1", "u1@x.io", context=ctx)
        code = notifier.last_code

        for _ in range(4):
            with pytest.raises(CodeMismatchError):
                await engine.submit_verification("login", "u1", wrong_code(code), context=ctx)
        with pytest.raises(LockedOutError):
            await engine.submit_verification("login", "u1", wrong_code(code), context=ctx)

        clock.advance(120)
        with pytest.raises(RateLimitedError) as exc_info:
            await engine.request_challenge("login", "u1", "u1@x.io", context=ctx)
        assert exc_info.value.reason == RateLimitedError.LOCKED

        clock.advance(600)
        await engine.request_challenge("login", "u1", "u1@x.io", context=ctx)

    @pytest.mark.asyncio
    async def test_audio_lockout_has_no_cooldown(self, engine, notifier, clock):
        """Without lockout_seconds a fresh code can be requested after the interval."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        code = notifier.last_code
        for _ in range(4):
            with pytest.raises(CodeMismatchError):
                await engine.submit_verification("audio", "a@x.io", wrong_code(code))
        with pytest.raises(LockedOutError):
            await engine.submit_verification("audio", "a@x.io", wrong_code(code))

        clock.advance(61)
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        await engine.submit_verification("audio", "a@x.io", notifier.last_code)


class TestRateLimiting:
    """Issuance throttling through the engine."""

    @pytest.mark.asyncio
    async def test_window_cap_and_recovery(self, store, notifier, clock):
        """Cap 3 / window 600: 4th is limited, succeeds after the first ages out."""
        policy = PurposePolicy(rate_limit_max_requests=3, rate_limit_window_seconds=600)
        engine = StepUpEngine(store, notifier, policies={"audio": policy}, clock=clock)

        for _ in range(3):
            await engine.request_challenge("audio", "a@x.io", "a@x.io")
            clock.advance(61)

        with pytest.raises(RateLimitedError) as exc_info:
            await engine.request_challenge("audio", "a@x.io", "a@x.io")
        assert exc_info.value.reason == RateLimitedError.TOO_MANY

        # 183s elapsed since the first issuance
        clock.advance(600 - 183)
        issued = await engine.request_challenge("audio", "a@x.io", "a@x.io")
        assert issued.expires_in_seconds == 300
        assert len(notifier.sent) == 4

    @pytest.mark.asyncio
    async def test_too_soon(self, engine, clock):
        """A second request inside the minimum interval is refused."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        clock.advance(30)

        with pytest.raises(RateLimitedError) as exc_info:
            await engine.request_challenge("audio", "a@x.io", "a@x.io")
        assert exc_info.value.reason == RateLimitedError.TOO_SOON
        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_reissue_invalidates_previous_code(self, engine, notifier, clock):
        """After the interval a re-issue replaces the first code."""
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        first = notifier.last_code
        clock.advance(90)
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        second = notifier.last_code

        if first != second:
            with pytest.raises(CodeMismatchError):
                await engine.submit_verification("audio", "a@x.io", first)

        await engine.submit_verification("audio", "a@x.io", second)
        assert await engine.check_trust("audio", "a@x.io") is True

    @pytest.mark.asyncio
    async def test_missing_destination_looks_identical(self, engine, notifier):
        """Unknown accounts consume budget but nothing is sent."""
        issued = await engine.request_challenge("language", "ghost", None)

        assert issued.expires_in_seconds == 300
        assert notifier.sent == []
        with pytest.raises(RateLimitedError):
            await engine.request_challenge("language", "ghost", None)


class TestDelivery:
    """Notifier failures."""

    @pytest.mark.asyncio
    async def test_delivery_failure_stores_nothing(self, store, clock):
        """A failed send leaves no verifiable challenge."""
        engine = StepUpEngine(store, RecordingNotifier(fail=True), clock=clock)

        with pytest.raises(DeliveryFailedError):
            await engine.request_challenge("audio", "a@x.io", "a@x.io")

        with pytest.raises(ChallengeNotFoundError):
            await engine.submit_verification("audio", "a@x.io", "000000")

    @pytest.mark.asyncio
    async def test_sms_channel(self, engine, notifier):
        """Channel can be chosen per request."""
        await engine.request_challenge(
            "language", "uid-1", "+14155551234", channel=OtpChannel.SMS, binding="fr"
        )

        assert notifier.sent[0][1] == OtpChannel.SMS
        result = await engine.submit_verification("language", "uid-1", notifier.last_code, binding="fr")
        assert result.channel == OtpChannel.SMS


class TestBinding:
    """Codes bound to a value (language change)."""

    @pytest.mark.asyncio
    async def test_binding_mismatch_counts_as_attempt(self, engine, notifier):
        """Right code for a different language is rejected."""
        await engine.request_challenge("language", "uid-1", "u@x.io", binding="es")
        code = notifier.last_code

        with pytest.raises(CodeMismatchError) as exc_info:
            await engine.submit_verification("language", "uid-1", code, binding="de")
        assert exc_info.value.attempts_remaining == 4

        await engine.submit_verification("language", "uid-1", code, binding="es")


class TestFingerprint:
    """Login scope keys follow the client fingerprint."""

    @pytest.mark.asyncio
    async def test_trust_does_not_cross_devices(self, engine, notifier):
        """Trust granted on one IP/UA does not apply to another."""
        home = FingerprintContext(ip_address="198.51.100.1", user_agent=CHROME_UA)
        cafe = FingerprintContext(ip_address="192.0.2.55", user_agent=CHROME_UA)

        await engine.request_challenge("login", "u1", "u1@x.io", context=home)
        await engine.submit_verification("login", "u1", notifier.last_code, context=home)

        assert await engine.check_trust("login", "u1", home) is True
        assert await engine.check_trust("login", "u1", cafe) is False

    @pytest.mark.asyncio
    async def test_revoke(self, engine, notifier):
        """Revoking removes trust (logout)."""
        ctx = FingerprintContext(ip_address="198.51.100.1", user_agent=CHROME_UA)
        await engine.request_challenge("login", "u1", "u1@x.io", context=ctx)
        await engine.submit_verification("login", "u1", notifier.last_code, context=ctx)

        await engine.revoke_trust("login", "u1", ctx)

        assert await engine.check_trust("login", "u1", ctx) is False
        assert await engine.trust_expiry("login", "u1", ctx) is None


class TestEngineConfiguration:
    """Policies and lifecycle."""

    @pytest.mark.asyncio
    async def test_unknown_purpose(self, engine):
        """Unregistered purposes are rejected."""
        with pytest.raises(UnknownPurposeError):
            await engine.request_challenge("payments", "u1", "u1@x.io")

    @pytest.mark.asyncio
    async def test_register_policy(self, engine, notifier):
        """Custom purposes work once registered."""
        engine.register_policy("payout", PurposePolicy(otp_length=8, session_trust_ttl_seconds=120))

        await engine.request_challenge("payout", "u1", "u1@x.io")
        assert len(notifier.last_code) == 8
        result = await engine.submit_verification("payout", "u1", notifier.last_code)
        assert result.verified_until == engine.clock() + 120

    def test_from_config_requires_redis(self):
        """No REDIS_URL means the service is not configured."""
        from stepup_core.config import StepUpConfig

        with pytest.raises(StoreUnavailableError):
            StepUpEngine.from_config(StepUpConfig(redis_url=None))

    @pytest.mark.asyncio
    async def test_schedule_challenge_logs_failures(self, store, clock):
        """Background issuance never raises step-up errors."""
        engine = StepUpEngine(store, RecordingNotifier(fail=True), clock=clock)

        task = engine.schedule_challenge("audio", "a@x.io", "a@x.io")
        await asyncio.wait_for(task, timeout=1)

        assert task.exception() is None
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_schedule_challenge_sends(self, engine, notifier):
        """Background issuance delivers a code."""
        await engine.schedule_challenge("audio", "a@x.io", "a@x.io")

        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_unknown_channel(self, engine, notifier):
        """Unknown channels are rejected before any budget is used."""
        with pytest.raises(UnknownChannelError):
            await engine.request_challenge("audio", "a@x.io", "a@x.io", channel="push")

        assert notifier.sent == []
        await engine.request_challenge("audio", "a@x.io", "a@x.io", channel="sms")
        assert notifier.sent[0][1] == OtpChannel.SMS


class TestActorIsolation:
    """Scope keys for non-string actor ids."""

    @pytest.mark.asyncio
    async def test_trust_does_not_cross_integer_actors(self, engine, notifier):
        """Verifying actor 101 grants nothing to actor 202."""
        await engine.request_challenge("language", 101, "u101@x.io", binding="fr")
        await engine.submit_verification("language", 101, notifier.last_code, binding="fr")

        assert await engine.check_trust("language", 101) is True
        assert await engine.check_trust("language", 202) is False

    @pytest.mark.asyncio
    async def test_budget_does_not_cross_integer_actors(self, engine, notifier):
        """Each integer actor has its own issuance budget and challenge."""
        await engine.request_challenge("audio", 1, "one@x.io")
        await engine.request_challenge("audio", 2, "two@x.io")

        with pytest.raises(ChallengeNotFoundError):
            await engine.submit_verification("audio", 3, notifier.last_code)


class YieldingStore(InMemoryStore):
    """Hands control back to the loop on every call so concurrent requests interleave."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value, ttl_seconds=None):
        await asyncio.sleep(0)
        await super().set(key, value, ttl_seconds)

    async def delete(self, key):
        await asyncio.sleep(0)
        await super().delete(key)


class TestConcurrentRequests:
    """Limits still trigger when requests for one key race."""

    @pytest.mark.asyncio
    async def test_rate_limit_eventually_triggers(self, notifier, clock):
        """Concurrent issuance bursts hit the window cap within a few rounds."""
        policy = PurposePolicy(rate_limit_max_requests=3, min_request_interval_seconds=0)
        engine = StepUpEngine(YieldingStore(clock=clock), notifier, policies={"audio": policy}, clock=clock)

        limited = False
        for _ in range(policy.rate_limit_max_requests + 1):
            results = await asyncio.gather(
                *(engine.request_challenge("audio", "a@x.io", "a@x.io") for _ in range(5)),
                return_exceptions=True,
            )
            assert all(not isinstance(r, Exception) or isinstance(r, RateLimitedError) for r in results)
            if any(isinstance(r, RateLimitedError) for r in results):
                limited = True
                break

        assert limited
        with pytest.raises(RateLimitedError):
            await engine.request_challenge("audio", "a@x.io", "a@x.io")

    @pytest.mark.asyncio
    async def test_lockout_eventually_triggers(self, notifier, clock):
        """Concurrent wrong guesses reach the attempt ceiling within a few rounds."""
        engine = StepUpEngine(YieldingStore(clock=clock), notifier, clock=clock)
        await engine.request_challenge("audio", "a@x.io", "a@x.io")
        code = notifier.last_code
        max_attempts = engine.policy("audio").max_verify_attempts

        locked = False
        for _ in range(max_attempts):
            results = await asyncio.gather(
                *(engine.submit_verification("audio", "a@x.io", wrong_code(code)) for _ in range(4)),
                return_exceptions=True,
            )
            assert all(
                isinstance(r, (CodeMismatchError, LockedOutError, ChallengeNotFoundError)) for r in results
            )
            if any(isinstance(r, LockedOutError) for r in results):
                locked = True
                break

        assert locked
        with pytest.raises((ChallengeNotFoundError, LockedOutError)):
            await engine.submit_verification("audio", "a@x.io", code)
