# specimen_core/services/batches.py
"""
Batch allocation service.

Every specimen is attached to its facility's single open batch at a
monotonically assigned position. Creating specimens must go through
create_specimen(); never insert Specimen rows directly.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Mapping, Optional

from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone

from specimen_core.exceptions import (
    BatchFull,
    InvalidState,
    NotFound,
    TenantMismatch,
    ValidationError,
)
from specimen_core.lifecycle import BatchPosition, CapacityExceeded, Program
from specimen_core.models import Batch, Facility, Specimen
from specimen_core.selectors import parse_program
from specimen_core.signals import record_audit

logger = logging.getLogger(__name__)


# ===============================================================
# Input contract
# ===============================================================

SENDER_FIELDS = (
    "senders_name",
    "senders_telephone",
    "senders_comments",
    "requesting_unit",
)

SPECIMEN_INPUT_FIELDS = (
    "sample_type",
    "subject_name",
    "subject_identifier",
    "other_identifier",
    "barcode",
    "gender",
    "date_of_birth",
    "age",
    "age_units",
    "contact_phone",
    # EID
    "pcr",
    "non_routine",
    "infant_feeding",
    "entry_point",
    "given_contri",
    "delivered_at_hc",
    "mother_htsnr",
    "mother_artnr",
    "mother_nin",
    # VL
    "pregnant",
    "anc_number",
    "breast_feeding",
    "active_tb_status",
    "treatment_initiation_date",
    "current_regimen_initiation_date",
)

REQUIRED_FIELDS = {
    Program.EID.value: ("subject_name", "subject_identifier"),
    Program.VIRAL_LOAD.value: (
        "subject_identifier",
        "treatment_initiation_date",
        "current_regimen_initiation_date",
    ),
}

DEFAULT_SAMPLE_TYPE = {
    Program.EID.value: Specimen.SampleType.DBS,
    Program.VIRAL_LOAD.value: Specimen.SampleType.PLASMA,
}


def _clean_sender(sender: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    sender = sender or {}
    return {
        field: str(sender.get(field) or "").strip()
        for field in SENDER_FIELDS
    }


def _missing_required(program: str, data: Mapping[str, Any]) -> list[str]:
    missing = []
    for field in REQUIRED_FIELDS[program]:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


# ===============================================================
# Open batch
# ===============================================================

@transaction.atomic
def get_or_create_open_batch(*, facility_id: int, sender: Optional[Mapping[str, Any]] = None) -> Batch:
    """
    Return the facility's open batch, creating one if none exists.

    The facility row lock serializes concurrent callers; the partial
    unique constraint catches anyone who got past it.
    """
    facility = Facility.objects.select_for_update().filter(pk=facility_id).first()
    if facility is None:
        raise NotFound(f"Facility {facility_id} does not exist.")

    batch = Batch.objects.for_facility(facility.pk).open().first()
    if batch is not None:
        return batch

    try:
        with transaction.atomic():
            batch = Batch.objects.create(
                facility=facility,
                facility_name=facility.name,
                facility_district=facility.district,
                **_clean_sender(sender),
            )
    except IntegrityError:
        logger.info("Open batch for facility %s created concurrently; reusing it", facility.pk)
        return Batch.objects.for_facility(facility.pk).open().get()

    batch.batch_number = f"{facility.code}-{batch.pk:06d}"
    batch.save(update_fields=["batch_number", "updated_at"])

    logger.info("Opened batch %s for facility %s", batch.batch_number, facility.code)
    return batch


# ===============================================================
# Positions
# ===============================================================

def next_position(*, batch_id: int) -> int:
    """
    Next free position in the batch.

    Positions continue after the highest one ever assigned, so a deleted
    request leaves a gap instead of a reused slot. Call with the batch row
    locked.
    """
    occupied = (
        Specimen.objects.filter(batch_id=batch_id)
        .aggregate(top=Max("position"))["top"]
        or 0
    )
    try:
        return int(BatchPosition.after(occupied))
    except CapacityExceeded:
        logger.warning("Batch %s is full (%s positions used)", batch_id, occupied)
        raise BatchFull()


# ===============================================================
# Create specimen
# ===============================================================

@transaction.atomic
def create_specimen(
    *,
    facility_id: int,
    program: str,
    data: Mapping[str, Any],
    sender: Optional[Mapping[str, Any]] = None,
    user=None,
) -> Specimen:
    if not program:
        raise ValidationError({"program": "This field is required."})
    program = parse_program(program)

    data = data or {}
    missing = _missing_required(program, data)
    if missing:
        raise ValidationError({field: "This field is required." for field in missing})

    batch = get_or_create_open_batch(facility_id=facility_id, sender=sender)
    batch = Batch.objects.select_for_update().get(pk=batch.pk)
    position = next_position(batch_id=batch.pk)

    fields = {k: data[k] for k in SPECIMEN_INPUT_FIELDS if k in data and data[k] is not None}
    fields.setdefault("sample_type", DEFAULT_SAMPLE_TYPE[program])

    specimen = Specimen(
        batch=batch,
        position=position,
        program=program,
        created_by=user if user is not None and user.is_authenticated else None,
        **fields,
    )
    specimen.save()

    logger.info(
        "Created %s specimen %s in batch %s at position %s",
        program, specimen.pk, batch.pk, position,
    )
    return specimen


# ===============================================================
# Dispatch (administrative)
# ===============================================================

@transaction.atomic
def dispatch_batch(
    *,
    batch_id: int,
    facility_id: int,
    dispatched_on: Optional[date] = None,
    user=None,
) -> Batch:
    """
    Close a batch by stamping its dispatch date.

    Once dispatched a batch never accepts specimens again; the next
    create_specimen call for the facility opens a fresh one.
    """
    batch = Batch.objects.select_for_update().filter(pk=batch_id).first()
    if batch is None:
        raise NotFound(f"Batch {batch_id} does not exist.")
    if batch.facility_id != int(facility_id):
        raise TenantMismatch()
    if not batch.is_open:
        raise InvalidState(
            f"Batch {batch.batch_number or batch.pk} was already dispatched "
            f"on {batch.date_dispatched_from_facility}."
        )

    batch.date_dispatched_from_facility = dispatched_on or timezone.localdate()
    batch.save(update_fields=["date_dispatched_from_facility", "updated_at"])

    record_audit(
        "BATCH_DISPATCHED",
        facility_id=batch.facility_id,
        user=user,
        batch_id=batch.pk,
        dispatched_on=batch.date_dispatched_from_facility.isoformat(),
    )
    logger.info("Dispatched batch %s", batch.batch_number or batch.pk)
    return batch
