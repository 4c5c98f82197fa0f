from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import agent, health, transactions
from .config import settings
from .logging_config import setup_logging
from .middleware import PaymentGateMiddleware, RequestLoggingMiddleware

DESCRIPTION = "Financial assistant that proposes IDRX transfers, optionally paid per request (x402)"

setup_logging()

app = FastAPI(title="Paychat Agent API", description=DESCRIPTION, version=__version__)

# Middleware added last runs first: CORS, then request logging, then the payment gate.
app.add_middleware(PaymentGateMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    # Browser clients must be able to read the challenge metadata.
    expose_headers=["WWW-Authenticate", "X-Payment-Required", "X-Request-Id"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(agent.router, tags=["Agent"])
app.include_router(transactions.router, tags=["Transactions"])


@app.get("/")
async def root():
    return {
        "name": app.title,
        "version": __version__,
        "description": DESCRIPTION,
        "agent": "/api/agent",
        "payment_required": settings.payment_required,
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("paychat.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
