"""
HTTP surface for the recommendation engine.

    POST /recommendations   sections for the caller behind the bearer credential
    GET  /health            liveness and configured backend

Use: uvicorn hilal_rec.server:app   (or `hilal-rec serve`)
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import IdentityClient, Unauthorized
from .config import STORE_BACKEND, HTTP_TIMEOUT, CORS_ORIGINS, CORS_HEADERS
from .engine import make_store, recommend, sections_payload

logger = logging.getLogger(__name__)


def create_app(store=None, identity=None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        store: Store adapter to use instead of the configured backend
        identity: Object with `async resolve_user_id(header) -> str`, replacing
            the hosted identity service
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # One pooled HTTP client per process, shared by the store and identity lookups
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            active_store = store or make_store(STORE_BACKEND, client=client)
            async with active_store:
                app.state.store = active_store
                app.state.identity = identity or IdentityClient(client)
                logger.info(f"Recommendation service ready (backend={active_store.name})")
                yield

    app = FastAPI(
        title="Hilal Recommendations",
        description="Per-viewer series recommendations: because-you-watched, recommended and popular sections.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )

    @app.get("/health")
    def health(request: Request):
        return {"status": "ok", "backend": request.app.state.store.name}

    @app.post("/recommendations")
    async def recommendations(request: Request, authorization: Optional[str] = Header(None)):
        """Recommendation sections for the authenticated caller."""
        try:
            user_id = await request.app.state.identity.resolve_user_id(authorization)
        except Unauthorized as exc:
            logger.info(f"Rejected recommendations request: {exc}")
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        try:
            sections = await recommend(request.app.state.store, user_id)
        except Exception:
            logger.exception(f"recommendations error for user {user_id}")
            return JSONResponse({"error": "Internal server error"}, status_code=500)

        return sections_payload(sections)

    return app


app = create_app()
