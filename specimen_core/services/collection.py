# specimen_core/services/collection.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from django.db import transaction
from django.utils import timezone

from specimen_core.exceptions import InvalidState, ValidationError
from specimen_core.models import Specimen
from specimen_core.selectors import get_specimen
from specimen_core.services.batches import REQUIRED_FIELDS, SPECIMEN_INPUT_FIELDS, _missing_required
from specimen_core.signals import record_audit

logger = logging.getLogger(__name__)


@transaction.atomic
def collect(
    *,
    specimen_id: int,
    facility_id: int,
    collected_at: Optional[datetime] = None,
    barcode: Optional[str] = None,
    user=None,
) -> Specimen:
    """
    Record that the specimen was physically collected.

    Repeat calls overwrite the timestamp (last write wins).
    """
    specimen = get_specimen(specimen_id=specimen_id, facility_id=facility_id, for_update=True)

    specimen.collected_at = collected_at or timezone.now()
    update_fields = ["collected_at", "collected_by", "updated_at"]

    if barcode is not None and str(barcode).strip():
        specimen.barcode = str(barcode).strip()
        update_fields.append("barcode")

    specimen.collected_by = user if user is not None and user.is_authenticated else None
    specimen.save(update_fields=update_fields)

    record_audit(
        "SPECIMEN_COLLECTED",
        facility_id=facility_id,
        user=user,
        specimen_id=specimen.pk,
        collected_at=specimen.collected_at.isoformat(),
    )
    logger.info("Specimen %s collected at %s", specimen.pk, specimen.collected_at)
    return specimen


@transaction.atomic
def delete_request(*, specimen_id: int, facility_id: int) -> None:
    """Delete a specimen request that has not progressed past creation."""
    specimen = get_specimen(specimen_id=specimen_id, facility_id=facility_id, for_update=True)

    if specimen.collected_at is not None:
        raise InvalidState("Cannot delete a specimen that has already been collected.")
    if specimen.is_testing_complete:
        raise InvalidState("Cannot delete a specimen whose testing is complete.")

    pk = specimen.pk
    specimen.delete()
    logger.info("Deleted specimen request %s", pk)


@transaction.atomic
def update_request(
    *,
    specimen_id: int,
    facility_id: int,
    data: Optional[Mapping[str, Any]],
    user=None,
) -> Specimen:
    """
    Correct the clinical details of a request that is still pending.

    Only subject and clinical fields change; program, batch, position,
    event timestamps and package fields are left alone.
    """
    specimen = get_specimen(specimen_id=specimen_id, facility_id=facility_id, for_update=True)

    if specimen.collected_at is not None:
        raise InvalidState("Cannot edit a specimen that has already been collected.")
    if specimen.is_testing_complete:
        raise InvalidState("Cannot edit a specimen whose testing is complete.")

    changes = {k: v for k, v in (data or {}).items() if k in SPECIMEN_INPUT_FIELDS}
    if not changes:
        return specimen

    merged = {field: getattr(specimen, field) for field in REQUIRED_FIELDS[specimen.program]}
    merged.update(changes)
    missing = _missing_required(specimen.program, merged)
    if missing:
        raise ValidationError({field: "This field is required." for field in missing})

    for field, value in changes.items():
        if value is None and not Specimen._meta.get_field(field).null:
            value = ""
        setattr(specimen, field, value)
    specimen.save(update_fields=[*changes, "updated_at"])

    record_audit(
        "SPECIMEN_UPDATED",
        facility_id=facility_id,
        user=user,
        specimen_id=specimen.pk,
        fields=sorted(changes),
    )
    logger.info("Updated specimen request %s (%s)", specimen.pk, ", ".join(sorted(changes)))
    return specimen
