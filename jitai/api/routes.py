"""
REST API routes for the JITAI engine.

Endpoints (all under /api/v1 prefix):
- /health - Health check
- /decisions - May an intervention be shown now?
- /selections - Which content type to show
- /outcomes - User response to a tracked intervention
- /interventions - Record that an intervention was shown
- /results - Append a full outcome record
- /analytics/content - Learned effectiveness per content type
- /analytics/frequency - Cooldown multiplier from effectiveness
- /analytics/burden - Burden trend (records the current score)
- /analytics/timing - Learned success rate per hour
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from fastapi import APIRouter, Depends

from jitai.api.dependencies import get_engine
from jitai.api.schemas import (
    DecisionRequest,
    InterventionShownRequest,
    OutcomeRecordRequest,
    OutcomeRequest,
    SelectionRequest,
    success_response,
)
from jitai.services.engine import JitaiEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def _as_dict(obj: Any) -> dict[str, Any]:
    data = dataclasses.asdict(obj)
    for key, value in data.items():
        if isinstance(value, (set, frozenset)):
            data[key] = sorted(str(v) for v in value)
    return data


# =============================================================================
# Health
# =============================================================================


@router.get("/health")
async def health_check() -> dict[str, Any]:
    return success_response({"status": "ok"})


# =============================================================================
# Decisions and content
# =============================================================================


@router.post("/decisions")
async def decide(request: DecisionRequest, engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    """Run the adaptive rate limiter for the supplied context."""
    result = await engine.can_show_intervention(
        request.context.to_context(),
        request.intervention_type,
        request.session_duration_ms,
        persona=request.signals.to_persona(),
        opportunity=request.signals.to_opportunity(),
    )
    return success_response(_as_dict(result))


@router.post("/selections")
async def select_content(request: SelectionRequest, engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    """Pick a content type; tracked for its outcome when intervention_id is given."""
    selection = await engine.select_content_type(
        request.context.to_context(),
        persona=request.signals.to_persona(),
        opportunity=request.signals.to_opportunity(),
        intervention_id=request.intervention_id,
    )
    return success_response(_as_dict(selection))


@router.post("/outcomes")
async def record_outcome(request: OutcomeRequest, engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    reward = await engine.record_outcome(
        request.intervention_id,
        request.user_choice,
        request.feedback,
        session_continued=request.session_continued,
        session_duration_after_ms=request.session_duration_after_ms,
        quick_reopen=request.quick_reopen,
        reopen_delay_ms=request.reopen_delay_ms,
        context=request.context.to_context() if request.context is not None else None,
    )
    return success_response({"intervention_id": request.intervention_id, "tracked": reward is not None, "reward": reward})


@router.post("/interventions")
async def record_intervention(
    request: InterventionShownRequest, engine: JitaiEngine = Depends(get_engine),
) -> dict[str, Any]:
    engine.record_intervention(request.intervention_type)
    return success_response({"recorded": True})


@router.post("/results")
async def add_result(request: OutcomeRecordRequest, engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    await engine.add_outcome_record(request.to_record())
    return success_response({"stored": True})


# =============================================================================
# Analytics
# =============================================================================


@router.get("/analytics/content")
async def content_effectiveness(engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    items = await engine.get_content_effectiveness()
    return success_response([{**_as_dict(item), "summary": item.format()} for item in items])


@router.get("/analytics/frequency")
async def frequency_multiplier(engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    return success_response({"multiplier": await engine.get_frequency_multiplier()})


@router.get("/analytics/burden")
async def burden_trend(engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    trend = await engine.get_burden_trend()
    return success_response(_as_dict(trend))


@router.get("/analytics/timing")
async def timing_effectiveness(engine: JitaiEngine = Depends(get_engine)) -> dict[str, Any]:
    hours = await engine.get_timing_effectiveness() or {}
    return success_response({
        "hours": {str(hour): rate for hour, rate in sorted(hours.items())},
        "reliable": await engine.has_reliable_timing_data(),
    })
