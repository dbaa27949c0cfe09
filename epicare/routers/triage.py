import logging

from fastapi import APIRouter, HTTPException

from epicare.models.followup import TriageRequest
from epicare.models.triage import RenderPlan
from epicare.services.triage_engine import UNAVAILABLE_MESSAGE, safe_triage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/triage", tags=["triage"])


@router.post("", response_model=RenderPlan)
async def triage_analysis(body: TriageRequest):
    """Triage an existing CDS analysis without a session.

    A failed analysis is never triaged; the caller shows the error instead.
    """
    if not body.analysis.success:
        logger.info("Refusing to triage failed analysis: %s", body.analysis.error)
        raise HTTPException(status_code=422, detail=body.analysis.error or UNAVAILABLE_MESSAGE)
    return safe_triage(body.analysis, body.context)
