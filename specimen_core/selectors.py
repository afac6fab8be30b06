# specimen_core/selectors.py
from __future__ import annotations

from typing import Any, Dict, Optional

from specimen_core.exceptions import NotFound, TenantMismatch, ValidationError
from specimen_core.lifecycle import is_known_stage, normalize_program, stage_for
from specimen_core.models import Specimen

MAX_PAGE_SIZE = 100


# ===============================================================
# Argument parsing
# ===============================================================

def parse_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError({field: "Must be an integer."})
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError({field: "Must be an integer."})


def parse_page(limit: Any, offset: Any) -> tuple[int, int]:
    limit = parse_int(limit, field="limit")
    offset = parse_int(offset, field="offset")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError({"limit": f"Must be between 1 and {MAX_PAGE_SIZE}."})
    if offset < 0:
        raise ValidationError({"offset": "Must be zero or greater."})
    return limit, offset


def parse_program(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    try:
        return normalize_program(value).value
    except ValueError as exc:
        raise ValidationError({"program": str(exc)})


# ===============================================================
# Single specimen
# ===============================================================

def get_specimen(*, specimen_id: Any, facility_id: int, for_update: bool = False) -> Specimen:
    """
    Fetch one specimen and check it belongs to the facility.

    Raises NotFound for unknown ids and TenantMismatch when the specimen
    lives under another facility. Pass for_update inside a transaction to
    lock the row.
    """
    specimen_id = parse_int(specimen_id, field="specimen_id")
    qs = Specimen.objects.select_related("batch")
    if for_update:
        qs = qs.select_for_update(of=("self",))

    specimen = qs.filter(pk=specimen_id).first()
    if specimen is None:
        raise NotFound(f"Specimen {specimen_id} does not exist.")
    if specimen.batch.facility_id != int(facility_id):
        raise TenantMismatch()
    return specimen


# ===============================================================
# Listing
# ===============================================================

def list_specimens(
    *,
    facility_id: int,
    limit: Any = 10,
    offset: Any = 0,
    status: Optional[str] = None,
    search: Optional[str] = None,
    program: Optional[str] = None,
) -> Dict[str, Any]:
    limit, offset = parse_page(limit, offset)
    program = parse_program(program)

    status = (status or "").strip().upper() or None
    if status and not is_known_stage(status):
        raise ValidationError({"status": f"Unknown status: {status!r}."})

    qs = (
        Specimen.objects.for_facility(facility_id)
        .for_program(program)
        .search(search)
        .select_related("batch")
        .newest_first()
    )

    # Stage is derived, not stored, so status filtering happens after load.
    items = [s for s in qs if not status or stage_for(s).value == status]

    return {
        "items": items[offset:offset + limit],
        "total": len(items),
    }
