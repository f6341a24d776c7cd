from fastapi import APIRouter, Depends, Query

from yamo.auth import AuthContext, get_current_super_admin
from yamo.observability import metric_totals, metrics_snapshot, reset_metrics

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/metrics")
async def get_metrics(
    prefix: str | None = Query(None),
    auth: AuthContext = Depends(get_current_super_admin),
):
    """In-process counters since start (or the last reset), optionally one family. Superadmin only."""
    return {"counters": metrics_snapshot(prefix), "totals": metric_totals(prefix)}


@router.post("/metrics/reset")
async def clear_metrics(auth: AuthContext = Depends(get_current_super_admin)):
    counters = metrics_snapshot()
    reset_metrics()
    return {"counters": counters, "reset": True}
