import logging
from datetime import date
from typing import List, Optional

import httpx

from app.config import settings
from app.core.session_models import PatientContext
from app.models import PatientApiResponse

logger = logging.getLogger("patient_context")


def calculate_age(date_of_birth: Optional[str], today: Optional[date] = None) -> Optional[int]:
    if not date_of_birth:
        return None

    try:
        born = date.fromisoformat(date_of_birth[:10])
    except ValueError:
        return None

    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def to_patient_context(patient_id: str, payload: PatientApiResponse) -> PatientContext:
    gender = payload.get("gender")
    reason = payload.get("recentVisitReason")

    return PatientContext(
        patient_id=patient_id,
        age=calculate_age(payload.get("dateOfBirth")),
        gender=gender if isinstance(gender, str) else None,
        allergies=_string_list(payload.get("allergies")),
        medications=_string_list(payload.get("activeMedications")),
        conditions=_string_list(payload.get("chronicConditions")),
        recent_visit_reason=reason if isinstance(reason, str) else None,
    )


class PatientContextClient:
    """
    Fetches a minimal patient summary from the patient service.
    Returns None on any failure: suggestions still work without it.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url if base_url is not None else settings.PATIENT_API_BASE_URL
        self.timeout = timeout if timeout is not None else settings.PATIENT_API_TIMEOUT_SECONDS
        self._transport = transport

    async def fetch_patient_context(self, patient_id: str) -> Optional[PatientContext]:
        if not patient_id or not patient_id.strip():
            return None

        if not self.base_url:
            logger.debug("[PATIENT] No patient service configured, skipping %s", patient_id)
            return None

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(f"/api/patients/{patient_id}")

            if response.status_code != 200:
                logger.warning(
                    "[PATIENT] Failed to fetch context for %s: HTTP %s",
                    patient_id,
                    response.status_code,
                )
                return None

            payload = response.json()

        except httpx.HTTPError as e:
            logger.warning("[PATIENT] HTTP error fetching context for %s: %s", patient_id, e)
            return None

        except ValueError as e:
            logger.warning("[PATIENT] Invalid JSON for patient %s: %s", patient_id, e)
            return None

        if not isinstance(payload, dict):
            return None

        context = to_patient_context(patient_id, payload)

        logger.debug(
            "[PATIENT] Context for %s: %d allergies, %d medications",
            patient_id,
            len(context.allergies),
            len(context.medications),
        )
        return context
