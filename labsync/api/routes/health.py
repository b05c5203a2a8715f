from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Sits outside the request pipeline: no auth, no rate limit, no envelope.
    Used by load balancers and monitoring systems to determine service health.

    Returns:
        dict: ``status`` plus the number of tracked rate limit windows.
    """

    store = getattr(request.app.state, "rate_limit_store", None)
    return {
        "status": "ok",
        "rate_limit_windows": len(store) if store is not None else 0,
    }
