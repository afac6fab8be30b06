# specimen_core/admin.py

from django.contrib import admin, messages
from rest_framework.exceptions import APIException

from .models import AuditLog, Batch, Facility, Specimen, UserRole
from .services.batches import dispatch_batch


@admin.register(Facility)
class FacilityAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "district", "hub", "is_active")
    search_fields = ("code", "name", "district")
    list_filter = ("is_active",)


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = ("batch_number", "facility", "date_dispatched_from_facility", "created_at")
    list_filter = ("facility",)
    search_fields = ("batch_number",)
    readonly_fields = ("batch_number", "facility", "date_dispatched_from_facility")
    actions = ["dispatch_selected"]

    @admin.action(description="Dispatch selected batches")
    def dispatch_selected(self, request, queryset):
        for batch in queryset:
            try:
                dispatch_batch(batch_id=batch.pk, facility_id=batch.facility_id, user=request.user)
            except APIException as exc:
                self.message_user(request, f"{batch}: {exc.detail}", level=messages.WARNING)
            else:
                self.message_user(request, f"{batch} dispatched.")


@admin.register(Specimen)
class SpecimenAdmin(admin.ModelAdmin):
    list_display = (
        "id", "program", "subject_identifier", "batch", "position",
        "collected_at", "package_identifier",
    )
    list_filter = ("program", "sample_type")
    search_fields = ("subject_identifier", "subject_name", "barcode", "package_identifier")
    readonly_fields = ("batch", "position", "package_identifier", "packaged_at")


admin.site.register(UserRole)
admin.site.register(AuditLog)
