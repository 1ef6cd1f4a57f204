"""Liveness and readiness probes.

Both are public: load balancers and the POS terminals' watchdog call them
without credentials.
"""

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from posauth.core import ping_database, settings

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    database_latency_ms: float | None = None


@router.get("/live")
async def liveness() -> dict[str, str]:
    """The process is up. Never touches the database."""
    return {"status": "alive"}


@router.get(
    "",
    response_model=HealthResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Database unreachable"}},
)
async def readiness(response: Response) -> HealthResponse:
    """Ready to authenticate: the credential store and ledger database answer.

    Answers 503 when the database is down, since every login and every
    gated request would fail with it.
    """
    latency = await ping_database()
    if latency is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="unhealthy", version=settings.app_version, database="disconnected"
        )

    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        database="connected",
        database_latency_ms=round(latency, 2),
    )
