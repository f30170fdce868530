"""
Step-up Engine
==============
Public facade over scope keys, rate limiting, OTP issuance/verification and
session trust, configured per purpose.

Example:
    engine = StepUpEngine.from_config(StepUpConfig.from_env())

    await engine.request_challenge("audio", user.email, user.email)
    result = await engine.submit_verification("audio", user.email, "123456")
    if await engine.check_trust("audio", user.email):
        ...
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set, Tuple

import structlog

from stepup_core.config import DEFAULT_POLICIES, PurposePolicy, StepUpConfig
from stepup_core.errors import (
    StepUpError,
    StoreUnavailableError,
    UnknownChannelError,
    UnknownPurposeError,
)
from stepup_core.notifier import ChannelRouter, Notifier, ResendEmailNotifier, TwilioSmsNotifier
from stepup_core.otp import OtpChannel, OtpIssuer, OtpVerifier
from stepup_core.rate_limit import IssuanceRateLimiter
from stepup_core.scope import FingerprintContext, ScopeKey, ScopeKeyBuilder
from stepup_core.store import EphemeralStore, RedisStore
from stepup_core.trust import SessionTrust

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChallengeIssued:
    """Response to a challenge request; identical whether or not a code was sent."""
    expires_in_seconds: int


@dataclass(frozen=True)
class VerificationResult:
    """Successful verification and the resulting trust window."""
    verified_until: float
    channel: OtpChannel


@dataclass
class _PurposeComponents:
    policy: PurposePolicy
    limiter: IssuanceRateLimiter
    issuer: OtpIssuer
    verifier: OtpVerifier


def build_notifier(config: StepUpConfig) -> ChannelRouter:
    """Create the default email + SMS router from configuration."""
    return ChannelRouter({
        OtpChannel.EMAIL: ResendEmailNotifier(
            api_key=config.resend_api_key,
            from_email=config.from_email,
            timeout=config.notifier_timeout_seconds,
        ),
        OtpChannel.SMS: TwilioSmsNotifier(
            account_sid=config.twilio_account_sid,
            auth_token=config.twilio_auth_token,
            from_number=config.twilio_from_number,
            timeout=config.notifier_timeout_seconds,
        ),
    })


def _resolve_channel(channel, default: OtpChannel) -> OtpChannel:
    if not channel:
        return default
    try:
        return OtpChannel(channel)
    except ValueError:
        raise UnknownChannelError(channel) from None


class StepUpEngine:
    """
    Step-up OTP verification and session trust.

    The store and notifier are injected and shared by every purpose; all
    state lives in the store, so any number of engine instances may serve
    the same keys concurrently.
    """

    def __init__(
        self,
        store: EphemeralStore,
        notifier: Notifier,
        policies: Optional[Dict[str, PurposePolicy]] = None,
        key_prefix: str = "stepup",
        notifier_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
        owns_resources: bool = False,
    ):
        """
        Args:
            store: Ephemeral store for all records
            notifier: Code delivery
            policies: Purpose name -> policy (defaults: login, audio, language)
            key_prefix: Store key namespace
            notifier_timeout: Seconds to wait for a delivery
            clock: Returns the current time in seconds
            owns_resources: Close store and notifier in ``aclose()``
        """
        self.store = store
        self.notifier = notifier
        self.key_prefix = key_prefix
        self.notifier_timeout = notifier_timeout
        self.clock = clock
        self._owns_resources = owns_resources
        self._policies: Dict[str, PurposePolicy] = dict(
            DEFAULT_POLICIES if policies is None else policies
        )
        self._components: Dict[str, _PurposeComponents] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.trust = SessionTrust(store, key_prefix=key_prefix, clock=clock)
        self.scope_keys = ScopeKeyBuilder(
            name for name, policy in self._policies.items() if policy.fingerprint
        )

    @classmethod
    def from_config(
        cls,
        config: StepUpConfig,
        policies: Optional[Dict[str, PurposePolicy]] = None,
    ) -> "StepUpEngine":
        """Create an engine owning a Redis store and the default notifiers."""
        if not config.redis_url:
            raise StoreUnavailableError("OTP service is not configured.")

        return cls(
            store=RedisStore.from_url(config.redis_url, timeout=config.store_timeout_seconds),
            notifier=build_notifier(config),
            policies=policies,
            key_prefix=config.key_prefix,
            notifier_timeout=config.notifier_timeout_seconds,
            owns_resources=True,
        )

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def register_policy(self, purpose: str, policy: PurposePolicy) -> None:
        """Add or replace the policy for ``purpose``."""
        self._policies[purpose] = policy
        self._components.pop(purpose, None)
        if policy.fingerprint:
            self.scope_keys.fingerprint_purposes.add(purpose)
        else:
            self.scope_keys.fingerprint_purposes.discard(purpose)

    def policy(self, purpose: str) -> PurposePolicy:
        try:
            return self._policies[purpose]
        except KeyError:
            raise UnknownPurposeError(purpose) from None

    @property
    def purposes(self) -> Tuple[str, ...]:
        return tuple(self._policies)

    def scope_key(
        self,
        purpose: str,
        actor_id,
        context: Optional[FingerprintContext] = None,
    ) -> ScopeKey:
        self.policy(purpose)
        return self.scope_keys.build(purpose, actor_id, context)

    def _for(self, purpose: str) -> _PurposeComponents:
        components = self._components.get(purpose)
        if components is not None:
            return components

        policy = self.policy(purpose)
        limiter = IssuanceRateLimiter(
            self.store,
            window_seconds=policy.rate_limit_window_seconds,
            max_requests=policy.rate_limit_max_requests,
            min_interval_seconds=policy.min_request_interval_seconds,
            key_prefix=self.key_prefix,
            clock=self.clock,
        )
        components = _PurposeComponents(
            policy=policy,
            limiter=limiter,
            issuer=OtpIssuer(
                self.store,
                self.notifier,
                otp_length=policy.otp_length,
                ttl_seconds=policy.otp_ttl_seconds,
                subject=policy.subject,
                send_timeout=self.notifier_timeout,
                key_prefix=self.key_prefix,
                clock=self.clock,
            ),
            verifier=OtpVerifier(
                self.store,
                max_attempts=policy.max_verify_attempts,
                rate_limiter=limiter,
                lockout_seconds=policy.lockout_seconds,
                key_prefix=self.key_prefix,
                clock=self.clock,
            ),
        )
        self._components[purpose] = components
        return components

    # ------------------------------------------------------------------
    # Contract surface
    # ------------------------------------------------------------------

    async def request_challenge(
        self,
        purpose: str,
        actor_id,
        destination: Optional[str],
        channel: Optional[OtpChannel] = None,
        context: Optional[FingerprintContext] = None,
        binding: Optional[str] = None,
    ) -> ChallengeIssued:
        """
        Throttle, generate and deliver a code for ``actor_id``.

        A ``None`` destination (unknown account, no contact on file) still
        consumes rate-limit budget and returns the same response without
        sending anything, so callers can answer every request identically.

        Raises:
            RateLimitedError, DeliveryFailedError, StoreUnavailableError
            UnknownPurposeError, UnknownChannelError: caller misconfiguration,
                raised before any rate-limit budget is consumed
        """
        components = self._for(purpose)
        policy = components.policy
        channel = _resolve_channel(channel, policy.default_channel)
        scope_key = self.scope_keys.build(purpose, actor_id, context)

        await components.limiter.check_and_record(scope_key)

        if not destination:
            logger.info("otp_request_without_destination", purpose=purpose, scope_key=scope_key)
            return ChallengeIssued(expires_in_seconds=policy.otp_ttl_seconds)

        issued = await components.issuer.issue(scope_key, destination, channel, binding=binding)
        return ChallengeIssued(expires_in_seconds=issued.expires_in_seconds)

    async def submit_verification(
        self,
        purpose: str,
        actor_id,
        code,
        context: Optional[FingerprintContext] = None,
        binding: Optional[str] = None,
    ) -> VerificationResult:
        """
        Verify ``code`` and grant session trust on success.

        Raises:
            ChallengeNotFoundError, ChallengeExpiredError, LockedOutError,
            CodeMismatchError, StoreUnavailableError
        """
        components = self._for(purpose)
        scope_key = self.scope_keys.build(purpose, actor_id, context)

        challenge = await components.verifier.verify(scope_key, code, binding=binding)
        verified_until = await self.trust.grant(
            scope_key, components.policy.session_trust_ttl_seconds
        )
        return VerificationResult(verified_until=verified_until, channel=challenge.channel)

    async def check_trust(
        self,
        purpose: str,
        actor_id,
        context: Optional[FingerprintContext] = None,
    ) -> bool:
        return await self.trust.is_trusted(self.scope_key(purpose, actor_id, context))

    async def trust_expiry(
        self,
        purpose: str,
        actor_id,
        context: Optional[FingerprintContext] = None,
    ) -> Optional[float]:
        """Expiry timestamp of the active trust window, if any."""
        return await self.trust.verified_until(self.scope_key(purpose, actor_id, context))

    async def revoke_trust(
        self,
        purpose: str,
        actor_id,
        context: Optional[FingerprintContext] = None,
    ) -> None:
        await self.trust.revoke(self.scope_key(purpose, actor_id, context))

    # ------------------------------------------------------------------
    # Background issuance and lifecycle
    # ------------------------------------------------------------------

    def schedule_challenge(
        self,
        purpose: str,
        actor_id,
        destination: Optional[str],
        channel: Optional[OtpChannel] = None,
        context: Optional[FingerprintContext] = None,
        binding: Optional[str] = None,
    ) -> asyncio.Task:
        """
        Issue a challenge in the background.

        Step-up failures are logged rather than raised; the returned task
        always completes normally for them.
        """
        task = asyncio.create_task(
            self._background_request(purpose, actor_id, destination, channel, context, binding)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _background_request(self, purpose, actor_id, destination, channel, context, binding) -> None:
        try:
            await self.request_challenge(purpose, actor_id, destination, channel, context, binding)
        except StepUpError as e:
            logger.warning("background_otp_failed", purpose=purpose, kind=e.kind.value, error=e.message)

    async def aclose(self) -> None:
        """Wait for background issuances and release owned resources."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._owns_resources:
            await self.notifier.close()
            await self.store.close()
