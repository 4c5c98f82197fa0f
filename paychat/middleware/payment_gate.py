"""
Payment gate middleware.

When ``settings.payment_required`` is on, POSTs to protected paths must carry
an ``X-PAYMENT`` authorization. Missing or invalid authorizations get an HTTP
402 challenge describing what to pay (x402 "exact" scheme).
"""

import logging
import time
import uuid
from typing import Callable, Dict, Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..config import settings
from ..core.wallet.authorization import PAYMENT_HEADER, X402_VERSION, PaymentRequirements
from ..core.wallet.verification import PaymentVerificationError, verify_payment

logger = logging.getLogger(__name__)

DEFAULT_PROTECTED_PATHS = ("/api/agent",)


class PaymentGateMiddleware(BaseHTTPMiddleware):
    """Answer unpaid agent requests with a 402 challenge."""

    def __init__(
        self,
        app,
        protected_paths: Iterable[str] = DEFAULT_PROTECTED_PATHS,
        requirements_factory: Callable[[], PaymentRequirements] = PaymentRequirements.from_settings,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.protected_paths = frozenset(protected_paths)
        self.requirements_factory = requirements_factory
        self.clock = clock
        # Authorizations are single use; nonce -> validBefore of its authorization.
        self._spent_nonces: Dict[str, int] = {}

    def _is_protected(self, request: Request) -> bool:
        return (
            settings.payment_required
            and request.method == "POST"
            and request.url.path in self.protected_paths
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._is_protected(request):
            return await call_next(request)

        request_id = (
            request.headers.get("x-request-id")
            or structlog.contextvars.get_contextvars().get("request_id")
            or uuid.uuid4().hex[:16]
        )
        requirements = self.requirements_factory()
        header_value = request.headers.get(PAYMENT_HEADER)
        if not header_value:
            return self._challenge(request, requirements, request_id, "payment required")

        now = int(self.clock())
        try:
            payment = verify_payment(header_value, requirements, now=now)
        except PaymentVerificationError as exc:
            logger.warning(f"Rejected payment for {request.url.path} (request_id={request_id}): {exc}")
            return self._challenge(request, requirements, request_id, str(exc))

        if not self.spend_nonce(payment.authorization.nonce, payment.authorization.valid_before, now):
            return self._challenge(request, requirements, request_id, "authorization already used")

        logger.info(
            f"Accepted payment of {payment.authorization.value} from "
            f"{payment.authorization.from_address} (request_id={request_id})"
        )
        return await call_next(request)

    def spend_nonce(self, nonce: str, valid_before: int, now: int) -> bool:
        """Record a nonce as used; ``False`` if it was already spent.

        Expired entries are dropped, since an expired authorization never
        passes verification again.
        """

        expired = [key for key, deadline in self._spent_nonces.items() if deadline <= now]
        for key in expired:
            del self._spent_nonces[key]

        key = nonce.lower()
        if key in self._spent_nonces:
            return False
        self._spent_nonces[key] = valid_before
        return True

    def _challenge(
        self,
        request: Request,
        requirements: PaymentRequirements,
        request_id: str,
        reason: str,
    ) -> JSONResponse:
        entry = requirements.to_accepts_entry()
        entry.setdefault("resource", str(request.url))
        description = (
            f"{requirements.max_amount_required} units of {requirements.asset} "
            f"to {requirements.pay_to} on {requirements.network}"
        )
        return JSONResponse(
            status_code=402,
            content={"x402Version": X402_VERSION, "error": reason, "accepts": [entry]},
            headers={
                "WWW-Authenticate": settings.payment_challenge_detail,
                "X-Payment-Required": description,
                "X-Request-Id": request_id,
            },
        )
