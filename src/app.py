"""Ordering FastAPI application.

Web server that processes ordering commands synchronously via HTTP. Every
request under ``/orders`` runs inside the ordering domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload

Set ``CATALOGUE_SEED_FILE`` to a JSON list of products to pre-load the
in-memory product catalogue in development.
"""

import os

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - unset        → in-memory database
#   - "production" → PostgreSQL from DATABASE_URL
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ordering.domain import ordering  # noqa: E402
from ordering.utils.logging import add_context, clear_context  # noqa: E402

ordering.init()

_ORDERING_PREFIXES = ("/orders",)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Ordering API",
    description="Order lifecycle and inventory consistency",
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
    """Push the ordering domain context for ordering requests."""
    clear_context()
    add_context(method=request.method, path=request.url.path, user_id=request.headers.get("x-user-id"))
    if request.url.path.startswith(_ORDERING_PREFIXES):
        with ordering.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers and error handlers
# ---------------------------------------------------------------------------
from ordering.api import order_router, register_error_handlers  # noqa: E402

app.include_router(order_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
_seed_file = os.environ.get("CATALOGUE_SEED_FILE")
if _seed_file:
    from ordering.catalogue import get_catalogue  # noqa: E402

    get_catalogue().load_seed(_seed_file)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "ordering": {"name": ordering.name},
            },
        }
    )
