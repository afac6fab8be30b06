# specimen_core/mixins.py
from __future__ import annotations

from django.db.models import QuerySet

from .permissions import require_facility


# ===============================================================
# Facility-scoped queryset mixin (READ)
# ===============================================================

class FacilityScopedQuerysetMixin:
    """
    Restricts a queryset to the request's active facility.

    facility_lookup names the path from the model to Facility.
    """

    facility_lookup = "facility"

    def get_facility(self):
        facility = getattr(self.request, "facility", None)
        if facility is None:
            facility = require_facility(self.request)
            self.request.facility = facility
        return facility

    def get_scoped_queryset(self, base_qs: QuerySet) -> QuerySet:
        user = getattr(self.request, "user", None)
        if not user or not user.is_authenticated:
            return base_qs.none()
        return base_qs.filter(**{self.facility_lookup: self.get_facility()})
