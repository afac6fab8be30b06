# specimen_core/services/packaging.py
"""
Packaging workflow.

A package is a caller-named identifier stamped onto collected specimens.
Membership is append-only: once a specimen carries an identifier nothing
here changes it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Count, Max
from django.utils import timezone

from specimen_core.exceptions import AlreadyPackaged, NotFound, ValidationError
from specimen_core.models import Specimen
from specimen_core.selectors import parse_int, parse_page
from specimen_core.signals import record_audit

logger = logging.getLogger(__name__)


# ===============================================================
# Validation
# ===============================================================

def _clean_identifier(package_identifier: Any) -> str:
    identifier = str(package_identifier or "").strip()
    if not identifier:
        raise ValidationError({"package_identifier": "This field is required."})
    max_length = Specimen._meta.get_field("package_identifier").max_length
    if len(identifier) > max_length:
        raise ValidationError(
            {"package_identifier": f"Ensure this field has no more than {max_length} characters."}
        )
    return identifier


def _clean_ids(specimen_ids: Optional[Iterable[Any]]) -> List[int]:
    if not isinstance(specimen_ids, (list, tuple, set)):
        raise ValidationError({"specimen_ids": "A non-empty list of specimen ids is required."})

    ids: List[int] = []
    for raw in specimen_ids:
        ids.append(parse_int(raw, field="specimen_ids"))
    if not ids:
        raise ValidationError({"specimen_ids": "A non-empty list of specimen ids is required."})

    # Preserve request order, drop duplicates.
    return list(dict.fromkeys(ids))


# ===============================================================
# Package
# ===============================================================

@transaction.atomic
def package_specimens(
    *,
    facility_id: int,
    package_identifier: Any,
    specimen_ids: Optional[Iterable[Any]],
    user=None,
) -> Dict[str, Any]:
    """
    Stamp package_identifier onto every listed specimen, or onto none.

    Checks run per id in request order:
      - unknown or foreign id -> NotFound (foreign ids are not disclosed)
      - not collected         -> ValidationError
      - already packaged      -> AlreadyPackaged
    The write itself is a compare-and-set on package_identifier IS NULL;
    a short row count rolls the whole request back.
    """
    identifier = _clean_identifier(package_identifier)
    ids = _clean_ids(specimen_ids)

    rows = {
        s.pk: s
        for s in Specimen.objects.for_facility(facility_id)
        .select_for_update(of=("self",))
        .filter(pk__in=ids)
    }

    for pk in ids:
        specimen = rows.get(pk)
        if specimen is None:
            raise NotFound(f"Specimen {pk} not found.")
        if specimen.collected_at is None:
            raise ValidationError({"specimen_ids": f"Specimen {pk} has not been collected."})
        if specimen.package_identifier:
            raise AlreadyPackaged(
                f"Specimen {pk} already belongs to package {specimen.package_identifier}."
            )

    now = timezone.now()
    actor = user if user is not None and user.is_authenticated else None
    updated = (
        Specimen.objects.filter(pk__in=ids, package_identifier__isnull=True)
        .update(
            package_identifier=identifier,
            packaged_at=now,
            packaged_by=actor,
            updated_at=now,
        )
    )
    if updated != len(ids):
        logger.warning(
            "Package %s: expected %s specimens, stamped %s; rolling back",
            identifier, len(ids), updated,
        )
        raise AlreadyPackaged("One or more specimens were packaged concurrently.")

    record_audit(
        "SPECIMENS_PACKAGED",
        facility_id=facility_id,
        user=user,
        package_identifier=identifier,
        specimen_ids=ids,
    )
    logger.info("Packaged %s specimens into %s", updated, identifier)

    return {
        "success": True,
        "message": f"{updated} specimen(s) added to package {identifier}.",
        "package_identifier": identifier,
        "packaged_count": updated,
    }


# ===============================================================
# Listings
# ===============================================================

def list_ready_for_packaging(*, facility_id: int, limit: Any = 10, offset: Any = 0) -> Dict[str, Any]:
    limit, offset = parse_page(limit, offset)
    qs = (
        Specimen.objects.for_facility(facility_id)
        .ready_for_packaging()
        .select_related("batch")
        .newest_first()
    )
    return {
        "items": list(qs[offset:offset + limit]),
        "total": qs.count(),
    }


def list_packaged(
    *,
    facility_id: int,
    package_identifier: Optional[str] = None,
    limit: Any = 10,
    offset: Any = 0,
) -> Dict[str, Any]:
    limit, offset = parse_page(limit, offset)
    base = Specimen.objects.for_facility(facility_id)
    identifier = (package_identifier or "").strip() or None

    qs = (
        base.packaged(identifier)
        .select_related("batch")
        .order_by("-packaged_at", "-id")
    )
    return {
        "items": list(qs[offset:offset + limit]),
        "total": qs.count(),
        "packages": base.package_identifiers(),
    }


def package_summary(*, facility_id: int) -> List[Dict[str, Any]]:
    base = Specimen.objects.for_facility(facility_id).packaged()

    rows = (
        base.values("package_identifier")
        .annotate(specimen_count=Count("id"), last_packaged_at=Max("packaged_at"))
        .order_by("-last_packaged_at", "package_identifier")
    )

    sample_types: Dict[str, set] = {}
    for identifier, sample_type in base.values_list("package_identifier", "sample_type"):
        sample_types.setdefault(identifier, set()).add(sample_type)

    return [
        {
            "package_identifier": row["package_identifier"],
            "specimen_count": row["specimen_count"],
            "sample_types": sorted(sample_types.get(row["package_identifier"], ())),
            "last_packaged_at": row["last_packaged_at"],
        }
        for row in rows
    ]
