import logging
from datetime import date

from epicare.models.followup import AnalyzeResponse, FollowUpForm
from epicare.services.cds_client import CdsClient, get_cds_client
from epicare.services.patient_context import (
    build_patient_context,
    build_triage_context,
    has_blocking_errors,
    validate_follow_up,
)
from epicare.services.session import FollowUpSession
from epicare.services.triage_engine import UNAVAILABLE_MESSAGE, safe_triage

logger = logging.getLogger(__name__)


async def analyze_follow_up(
    session: FollowUpSession,
    form: FollowUpForm,
    *,
    client: CdsClient | None = None,
    as_of: date | None = None,
    now: float | None = None,
) -> AnalyzeResponse:
    """Run one follow-up form through CDS and the triage engine for an open session."""
    if not form.patient_id:
        form = form.model_copy(update={"patient_id": session.patient_id})

    generation = session.begin_update(now)
    if generation is None:
        return AnalyzeResponse(
            status="debounced", session=session.state(), render_plan=session.last_plan
        )

    validation = validate_follow_up(form)
    if has_blocking_errors(validation):
        logger.warning(
            "Session %s: CDS call blocked by %d validation errors", session.id, len(validation)
        )
        return AnalyzeResponse(
            status="blocked", session=session.state(), validation_warnings=validation
        )

    client = client or get_cds_client()
    analysis = await client.evaluate(
        build_patient_context(form, as_of), role=session.user_role or "unknown"
    )

    if not session.is_current(generation):
        logger.warning("Session %s: CDS result superseded by a newer request", session.id)
        return AnalyzeResponse(status="stale", session=session.state(), render_plan=session.last_plan)

    if not analysis.success:
        logger.info("Session %s: CDS unavailable: %s", session.id, analysis.error)
        return AnalyzeResponse(
            status="unavailable",
            session=session.state(),
            error=analysis.error or UNAVAILABLE_MESSAGE,
            validation_warnings=validation,
        )

    context = build_triage_context(form, session.user_role, as_of)
    plan = safe_triage(analysis, context)
    applied = session.complete_update(generation, plan) or []
    return AnalyzeResponse(
        status="ok",
        session=session.state(),
        render_plan=plan,
        validation_warnings=validation,
        auto_applied=applied,
    )
