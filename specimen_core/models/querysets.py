# specimen_core/models/querysets.py
from __future__ import annotations

from typing import List, Optional

from django.db import models
from django.db.models import Q


# ---------------------------------------------------------------------
# Fields matched by free-text specimen search
# ---------------------------------------------------------------------
SEARCH_FIELDS = (
    "subject_name",
    "subject_identifier",
    "other_identifier",
    "barcode",
    "mother_htsnr",
    "mother_artnr",
    "mother_nin",
    "anc_number",
)


class BatchQuerySet(models.QuerySet):
    def for_facility(self, facility_id: int):
        return self.filter(facility_id=facility_id)

    def open(self):
        return self.filter(date_dispatched_from_facility__isnull=True)

    def dispatched(self):
        return self.filter(date_dispatched_from_facility__isnull=False)


class SpecimenQuerySet(models.QuerySet):
    """
    Storage contract for specimens.

    Every public read path starts from for_facility(); nothing here
    crosses tenant boundaries on its own.
    """

    def for_facility(self, facility_id: int):
        return self.filter(batch__facility_id=facility_id)

    def for_program(self, program: Optional[str]):
        if not program:
            return self
        return self.filter(program=program)

    def newest_first(self):
        return self.order_by("-created_at", "-id")

    def collected(self):
        return self.filter(collected_at__isnull=False)

    def unpackaged(self):
        return self.filter(package_identifier__isnull=True)

    def ready_for_packaging(self):
        return self.collected().filter(received_at__isnull=True).unpackaged()

    def packaged(self, package_identifier: Optional[str] = None):
        qs = self.filter(package_identifier__isnull=False).exclude(package_identifier="")
        if package_identifier:
            qs = qs.filter(package_identifier=package_identifier)
        return qs

    def package_identifiers(self) -> List[str]:
        return sorted(
            set(
                self.packaged()
                .values_list("package_identifier", flat=True)
            )
        )

    def search(self, term: Optional[str]):
        term = (term or "").strip()
        if not term:
            return self
        q = Q()
        for field in SEARCH_FIELDS:
            q |= Q(**{f"{field}__icontains": term})
        return self.filter(q)
