"""Client for the remote CDS evaluation backend.

The backend is a form-encoded POST endpoint answering with a
``{status, data, code, message}`` envelope. Failures never raise to the
caller: they come back as ``AnalysisResult(success=False, ...)`` carrying a
message a clinician can act on, so the follow-up form stays usable.
"""

import asyncio
import hashlib
import json
import logging
import time
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from epicare.config import (
    CDS_API_URL,
    CDS_AUTH_TOKEN,
    CDS_CACHE_TTL_SECONDS,
    CDS_CLIENT_VERSION,
    CDS_RETRY_ATTEMPTS,
    CDS_RETRY_DELAY_SECONDS,
    CDS_TIMEOUT_SECONDS,
    DUMMY_MODE,
)
from epicare.models.cds import AnalysisResult

logger = logging.getLogger(__name__)

EVALUATE_ACTION = "cdsEvaluate"
PUBLIC_EVALUATE_ACTION = "publicCdsEvaluate"

DUMMY_DISCLAIMER = (
    "Offline demo guidance generated without the CDS knowledge base. "
    "Verify every recommendation clinically."
)


class CdsRequestError(Exception):
    """Transport-level failure after all retries."""

    def __init__(self, message: str, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code


def get_error_message(code: int | str | None, message: str | None) -> str:
    """Translate a backend or transport failure into clinician-facing text."""
    message = message or ""
    if "Invalid patient context" in message or "must be" in message:
        return (
            "Please ensure all patient context fields are filled correctly: pregnancy status, "
            "renal function, and hepatic function must be set."
        )
    if code == "timeout" or "timeout" in message.lower() or "timed out" in message.lower():
        return "Request timed out. Please check your connection and try again."
    if code == 401 or "Authentication" in message:
        return "Authentication required. Please log in again."
    if code == 403:
        return "You do not have permission to run clinical decision support for this patient."
    if code == 429:
        return "Too many CDS requests. Please wait a moment and try again."
    if isinstance(code, int) and code >= 500:
        return "The CDS service is temporarily unavailable. Please try again later."
    if message:
        return "CDS evaluation failed: " + message[:100]
    return "Failed to get clinical guidance. Please try again."


def _is_auth_error(status_code: int, body: dict) -> bool:
    code = body.get("code")
    return status_code == 401 or code in (401, "401") or "Authentication required" in str(
        body.get("message") or ""
    )


def _failure(code: int | str | None, message: str) -> AnalysisResult:
    if isinstance(code, str) and code.isdigit():
        code = int(code)
    user_message = get_error_message(code, message)
    return AnalysisResult(
        success=False,
        error=user_message,
        warnings=[{
            "id": "cds_api_error",
            "severity": "medium",
            "text": user_message,
            "rationale": f"API error: {message}" if message else "API error",
        }],
    )


def _dummy_analysis(patient_context: dict) -> AnalysisResult:
    """Deterministic offline analysis derived from the patient context."""
    follow_up = patient_context.get("followUp") or {}
    step3 = follow_up.get("step3") or {}
    demographics = patient_context.get("demographics") or {}
    medications = (patient_context.get("regimen") or {}).get("medications") or []

    warnings: list[dict] = []
    prompts: list[dict] = []
    special: list[dict] = []
    plan: dict[str, Any] = {}

    if step3.get("adherence") in ("OCCASIONAL", "FREQUENT", "STOPPED"):
        warnings.append({
            "id": "dummy_adherence",
            "severity": "high",
            "text": "Patient reports missed doses; reinforce adherence before any regimen change.",
            "nextSteps": ["Explore barriers to daily intake", "Recheck adherence at next visit"],
        })
    if step3.get("worsening") and len(medications) >= 2:
        prompts.append({
            "id": "dummy_referral",
            "severity": "medium",
            "text": "Seizures worsening on polytherapy: refer to specialist for review.",
        })
        plan["referral"] = "Worsening seizures on two or more ASMs"
    elif step3.get("worsening"):
        plan["addonSuggestion"] = "Clobazam 10 mg at night"
    if demographics.get("weightKg") and medications:
        prompts.append({
            "id": "dummy_dose_check",
            "severity": "info",
            "text": "Dose adequate for current weight.",
        })
    if demographics.get("gender") == "Female" and demographics.get("reproductivePotential"):
        special.append({
            "id": "dummy_folic_acid",
            "severity": "medium",
            "text": "Woman of reproductive potential: advise daily folic acid and discuss contraception.",
        })

    return AnalysisResult(
        warnings=warnings,
        prompts=prompts,
        special_considerations=special,
        plan=plan,
        disclaimer=DUMMY_DISCLAIMER,
        version="dummy",
    )


class CdsClient:
    def __init__(
        self,
        base_url: str | None = None,
        auth_token: str | None = None,
        *,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        cache_ttl: float | None = None,
        dummy_mode: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = CDS_API_URL if base_url is None else base_url
        self.auth_token = CDS_AUTH_TOKEN if auth_token is None else auth_token
        self.timeout = CDS_TIMEOUT_SECONDS if timeout is None else timeout
        self.retry_attempts = max(1, CDS_RETRY_ATTEMPTS if retry_attempts is None else retry_attempts)
        self.retry_delay = CDS_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.cache_ttl = CDS_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl
        self.dummy_mode = DUMMY_MODE if dummy_mode is None else dummy_mode
        self._transport = transport
        self._cache: dict[str, tuple[float, AnalysisResult]] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def has_auth_token(self) -> bool:
        return len((self.auth_token or "").strip()) > 10

    @staticmethod
    def cache_key(patient_context: dict) -> str:
        encoded = json.dumps(patient_context, sort_keys=True, default=str).encode()
        digest = hashlib.sha256(encoded).hexdigest()
        return f"cds_evaluate_{patient_context.get('patientId') or ''}_{digest}"

    def _cache_get(self, key: str) -> AnalysisResult | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, result = entry
        if time.monotonic() > expires_at:
            del self._cache[key]
            return None
        return result

    def _cache_put(self, key: str, result: AnalysisResult) -> None:
        now = time.monotonic()
        expired = [k for k, (expires_at, _) in self._cache.items() if now > expires_at]
        for k in expired:
            del self._cache[k]
        self._cache[key] = (now + self.cache_ttl, result)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def evaluate(
        self,
        patient_context: dict,
        *,
        username: str = "unknown",
        role: str = "unknown",
        assigned_phc: str = "",
    ) -> AnalysisResult:
        """Evaluate one patient context. Identical concurrent calls share one request."""
        if self.dummy_mode or not self.base_url:
            logger.info("[DUMMY] CDS evaluation for patient %s", patient_context.get("patientId"))
            return _dummy_analysis(patient_context)

        key = self.cache_key(patient_context)
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug("Returning cached CDS result for %s", key)
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._evaluate_uncached(key, patient_context, username, role, assigned_phc)
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        else:
            logger.debug("Reusing in-flight CDS evaluation for %s", key)
        return await asyncio.shield(task)

    async def _evaluate_uncached(
        self, key: str, patient_context: dict, username: str, role: str, assigned_phc: str
    ) -> AnalysisResult:
        base_payload = {
            "patientContext": json.dumps(patient_context, default=str),
            "username": username,
            "role": role,
            "assignedPHC": assigned_phc,
            "authToken": self.auth_token or "",
            "clientVersion": CDS_CLIENT_VERSION,
            "timestamp": datetime.now(UTC).isoformat(),
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                if self.has_auth_token:
                    status_code, body = await self._post_evaluate(client, EVALUATE_ACTION, base_payload)
                    if _is_auth_error(status_code, body):
                        logger.warning("cdsEvaluate rejected credentials, retrying public evaluation")
                        status_code, body = await self._post_evaluate(
                            client, PUBLIC_EVALUATE_ACTION, base_payload
                        )
                else:
                    status_code, body = await self._post_evaluate(
                        client, PUBLIC_EVALUATE_ACTION, base_payload
                    )
            except CdsRequestError as e:
                logger.warning("CDS evaluation failed: %s", e)
                return _failure(e.code, str(e))

        if body.get("status") != "success":
            code = body.get("code") or status_code
            message = str(body.get("message") or f"HTTP {status_code}")
            logger.error("CDS backend returned an error (%s): %s", code, message)
            return _failure(code, message)

        try:
            result = AnalysisResult.model_validate(body.get("data") or {})
        except ValidationError as e:
            logger.error("Malformed CDS response: %s", e)
            return _failure(None, "Malformed response from CDS backend")

        if result.success:
            self._cache_put(key, result)
        return result

    async def _post_evaluate(
        self, client: httpx.AsyncClient, action: str, base_payload: dict
    ) -> tuple[int, dict]:
        logger.debug("POST %s (action=%s)", self.base_url, action)
        resp = await self._post_with_retry(client, {"action": action, **base_payload})
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if not body and resp.status_code >= 400:
            body = {"status": "error", "code": resp.status_code, "message": resp.reason_phrase}
        return resp.status_code, body

    async def _post_with_retry(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        """POST with linear backoff. Only transport errors are retried."""
        last_error: httpx.RequestError | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await client.post(self.base_url, data=payload)
            except httpx.TimeoutException as e:
                last_error = e
                logger.warning("CDS request timed out (attempt %d/%d)", attempt, self.retry_attempts)
            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    "CDS request failed (attempt %d/%d): %s", attempt, self.retry_attempts, e
                )
            if attempt < self.retry_attempts:
                await asyncio.sleep(self.retry_delay * attempt)

        if isinstance(last_error, httpx.TimeoutException):
            raise CdsRequestError(f"Request timeout after {self.timeout}s", code="timeout")
        raise CdsRequestError(str(last_error) or "Network error", code="network")


_client: CdsClient | None = None


def get_cds_client() -> CdsClient:
    global _client
    if _client is None:
        _client = CdsClient()
    return _client
