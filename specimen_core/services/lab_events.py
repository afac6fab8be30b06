# specimen_core/services/lab_events.py
"""
Central-lab events: receipt, result, verification.

Each event only moves a specimen forward. Timestamps already set are
never cleared here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from django.db import transaction
from django.utils import timezone

from specimen_core.exceptions import InvalidState, ValidationError
from specimen_core.models import Specimen
from specimen_core.selectors import get_specimen
from specimen_core.signals import record_audit

logger = logging.getLogger(__name__)


def _actor(user):
    return user if user is not None and user.is_authenticated else None


@transaction.atomic
def mark_received(
    *,
    specimen_id: int,
    facility_id: int,
    received_at: Optional[datetime] = None,
    user=None,
) -> Specimen:
    specimen = get_specimen(specimen_id=specimen_id, facility_id=facility_id, for_update=True)

    if specimen.collected_at is None:
        raise InvalidState("Specimen must be collected before it can be received.")
    if specimen.received_at is not None:
        raise InvalidState("Specimen has already been received.")

    specimen.received_at = received_at or timezone.now()
    specimen.received_by = _actor(user)
    specimen.save(update_fields=["received_at", "received_by", "updated_at"])

    record_audit("SPECIMEN_RECEIVED", facility_id=facility_id, user=user, specimen_id=specimen.pk)
    return specimen


@transaction.atomic
def record_result(
    *,
    specimen_id: int,
    facility_id: int,
    accepted_result: Optional[str] = None,
    result_value: Optional[str] = None,
    tested_at: Optional[datetime] = None,
    user=None,
) -> Specimen:
    specimen = get_specimen(specimen_id=specimen_id, facility_id=facility_id, for_update=True)

    if specimen.received_at is None:
        raise InvalidState("Specimen must be received before a result is recorded.")
    if specimen.is_testing_complete:
        raise InvalidState("A result has already been recorded for this specimen.")

    accepted_result = (accepted_result or "").strip().upper()
    result_value = (result_value or "").strip()

    if specimen.program == Specimen.Program.EID:
        if accepted_result not in Specimen.AcceptedResult.values:
            raise ValidationError(
                {"accepted_result": f"Must be one of {', '.join(Specimen.AcceptedResult.values)}."}
            )
        specimen.accepted_result = accepted_result
    else:
        if not result_value:
            raise ValidationError({"result_value": "This field is required."})
        specimen.result_value = result_value

    specimen.tested_at = tested_at or timezone.now()
    specimen.save(update_fields=["accepted_result", "result_value", "tested_at", "updated_at"])

    record_audit(
        "RESULT_RECORDED",
        facility_id=facility_id,
        user=user,
        specimen_id=specimen.pk,
        accepted_result=specimen.accepted_result,
        result_value=specimen.result_value,
    )
    logger.info("Result recorded for specimen %s", specimen.pk)
    return specimen


@transaction.atomic
def verify_result(
    *,
    specimen_id: int,
    facility_id: int,
    verified_at: Optional[datetime] = None,
    user=None,
) -> Specimen:
    specimen = get_specimen(specimen_id=specimen_id, facility_id=facility_id, for_update=True)

    has_result = bool(specimen.accepted_result or specimen.result_value)
    if specimen.tested_at is None and not has_result:
        raise InvalidState("Specimen has no result to verify.")
    if specimen.verified_at is not None:
        raise InvalidState("Result has already been verified.")

    specimen.verified_at = verified_at or timezone.now()
    specimen.verified_by = _actor(user)
    specimen.save(update_fields=["verified_at", "verified_by", "updated_at"])

    record_audit("RESULT_VERIFIED", facility_id=facility_id, user=user, specimen_id=specimen.pk)
    return specimen
