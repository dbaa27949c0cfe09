import logging

from fastapi import APIRouter, HTTPException

from epicare.models.followup import (
    AnalyzeResponse,
    ControlUpdate,
    FollowUpForm,
    SessionCreate,
    SessionState,
    SmartDefaultControl,
)
from epicare.services.followup import analyze_follow_up
from epicare.services.session import sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/followup", tags=["followup"])


@router.post("/sessions", response_model=SessionState)
async def open_session(body: SessionCreate):
    """Open a follow-up session when the form is opened."""
    session = sessions.open(body.patient_id, body.user_role)
    return session.state()


@router.get("/sessions/{session_id}", response_model=SessionState)
async def get_session(session_id: str):
    try:
        return sessions.get(session_id).state()
    except ValueError:
        raise HTTPException(status_code=404, detail="Session not found") from None


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    """Discard the session when the form is closed."""
    try:
        sessions.close(session_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Session not found") from None
    return {"status": "closed"}


@router.post("/sessions/{session_id}/controls/{control}", response_model=SmartDefaultControl)
async def set_control(session_id: str, control: str, body: ControlUpdate):
    """Record a manual toggle of a smart-default control."""
    try:
        session = sessions.get(session_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Session not found") from None
    try:
        return session.set_control(control, body.checked)
    except ValueError:
        raise HTTPException(status_code=404, detail="Control not found") from None


@router.post("/sessions/{session_id}/analyze", response_model=AnalyzeResponse)
async def analyze(session_id: str, body: FollowUpForm):
    """Evaluate the current form values and return the render plan.

    Status values:
    - ok: CDS answered and the render plan was built
    - blocked: required fields missing, CDS was not called
    - unavailable: CDS failed, the form stays usable without guidance
    - debounced: update arrived within the debounce window
    - stale: a newer request superseded this one
    """
    try:
        session = sessions.get(session_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Session not found") from None
    return await analyze_follow_up(session, body)
