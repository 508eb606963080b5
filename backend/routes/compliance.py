"""Compliance stats endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/compliance")
async def get_compliance(request: Request):
    """Violation counters and current prompt strength level."""
    return request.app.state.monitor.get_stats().model_dump(mode="json")


@router.get("/compliance/report")
async def get_compliance_report(request: Request):
    """Human-readable violation report."""
    return {"report": request.app.state.monitor.get_violation_report()}


@router.post("/compliance/reset")
async def reset_compliance(request: Request):
    """Zero all counters and reset the strength level to 1."""
    monitor = request.app.state.monitor
    monitor.reset_stats()
    return monitor.get_stats().model_dump(mode="json")
