"""Reconciliation service FastAPI application.

Receives payment gateway and carrier webhooks and exposes the payment and
shipment endpoints. Each request is wrapped in the correct domain context
based on URL prefix.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Domains are initialized at module level so uvicorn workers share them.
# PROTEAN_ENV selects the config overlay from [tool.protean] in pyproject.toml.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fulfillment.domain import fulfillment  # noqa: E402
from payments.domain import payments  # noqa: E402
from shared.logging import add_context, clear_context

payments.init()
fulfillment.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_DOMAIN_MAP = {
    "/payments": payments,
    "/shipments": fulfillment,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Fulfillment Reconciliation API",
    description="Payment webhook reconciliation, shipment label pipeline and carrier tracking",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the correct Protean domain context and log context for each request."""
    clear_context()
    add_context(path=request.url.path, request_id=request.headers.get("x-request-id", ""))

    domain = _resolve_domain(request.url.path)
    if domain is not None:
        with domain.domain_context():
            response = await call_next(request)
        return response
    # No domain match: pass through (health check, docs)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from fulfillment.api.routes import shipment_router  # noqa: E402
from payments.api.routes import payment_router  # noqa: E402

app.include_router(payment_router)
app.include_router(shipment_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "payments": {"name": payments.name},
                "fulfillment": {"name": fulfillment.name},
            },
        }
    )
