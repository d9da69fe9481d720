from __future__ import annotations

from fastapi import APIRouter, Depends

from sliding_limiter.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Limited"], dependencies=[Depends(enforce_rate_limit)])


@router.get("/ping")
async def ping() -> dict:
    """Minimal guarded endpoint.

    Reaching the handler means the request was admitted; denials never get
    this far.
    """

    return {"status": "ok"}
