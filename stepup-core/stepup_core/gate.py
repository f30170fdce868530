"""
Step-up Gate
============
FastAPI dependency that blocks protected routes until the caller's scope
key holds session trust.

Usage:
    gate = StepUpGate(engine, purpose="login", chrome_only=True, policies=[
        TimeWindowPolicy(start=time(10), end=time(13), tz="Asia/Kolkata"),
    ])

    @app.get("/loggedinuser")
    async def logged_in_user(device: DeviceInfo = Depends(gate)):
        ...
"""

from typing import Callable, Optional, Sequence

from fastapi import HTTPException, Request
import structlog

from stepup_core.device import DeviceInfo, context_from_headers, parse_user_agent
from stepup_core.engine import StepUpEngine
from stepup_core.errors import StepUpError
from stepup_core.http_errors import to_http_exception
from stepup_core.policies import AccessPolicy, PolicyViolation
from stepup_core.scope import FingerprintContext

logger = structlog.get_logger(__name__)

OTP_REQUIRED_MESSAGE = "OTP verification required."


def request_context(request: Request) -> FingerprintContext:
    """Fingerprint context for a request; use the same helper when issuing and verifying."""
    peer = request.client.host if request.client else None
    return context_from_headers(request.headers, peer)


def default_actor(request: Request) -> Optional[str]:
    """Actor id placed on request.state by the authentication layer."""
    return getattr(request.state, "user_id", None) or getattr(request.state, "user_email", None)


class StepUpGate:
    """Checks session trust (and optional access policies) per request."""

    def __init__(
        self,
        engine: StepUpEngine,
        purpose: str = "login",
        chrome_only: bool = False,
        policies: Sequence[AccessPolicy] = (),
        actor_resolver: Callable[[Request], Optional[str]] = default_actor,
    ):
        """
        Args:
            engine: Step-up engine
            purpose: Purpose whose trust is required
            chrome_only: Only require step-up for Chrome clients
            policies: Predicates evaluated before the trust check
            actor_resolver: Extracts the actor id from the request
        """
        engine.policy(purpose)
        self.engine = engine
        self.purpose = purpose
        self.chrome_only = chrome_only
        self.policies = list(policies)
        self.actor_resolver = actor_resolver

    async def __call__(self, request: Request) -> DeviceInfo:
        context = request_context(request)
        device = parse_user_agent(context.user_agent)
        request.state.step_up_device = device
        request.state.step_up_ip = context.ip_address

        for policy in self.policies:
            try:
                policy(device)
            except PolicyViolation as e:
                logger.info("step_up_policy_denied", purpose=self.purpose, reason=e.message)
                raise HTTPException(status_code=e.status_code, detail={"message": e.message})

        if self.chrome_only and not device.is_chrome:
            return device

        actor_id = self.actor_resolver(request) or "anonymous"

        try:
            trusted = await self.engine.check_trust(self.purpose, actor_id, context)
        except StepUpError as e:
            raise to_http_exception(e)

        if not trusted:
            raise HTTPException(
                status_code=403,
                detail={"message": OTP_REQUIRED_MESSAGE, "requiresOtp": True},
            )
        return device
