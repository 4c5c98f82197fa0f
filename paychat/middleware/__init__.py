from .logging_middleware import RequestLoggingMiddleware
from .payment_gate import PaymentGateMiddleware

__all__ = [
    "PaymentGateMiddleware",
    "RequestLoggingMiddleware",
]
