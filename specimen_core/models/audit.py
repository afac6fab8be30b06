# specimen_core/models/audit.py

from django.conf import settings
from django.db import models

from .core import Facility, TimeStampedModel


class AuditLog(TimeStampedModel):
    """Track specimen and batch actions for traceability."""

    facility = models.ForeignKey(
        Facility,
        on_delete=models.PROTECT,
        related_name="audit_logs",
        null=True,
        blank=True,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    action = models.CharField(max_length=255, db_index=True)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
        ]

    @classmethod
    def record(cls, action: str, *, facility_id=None, user=None, **details):
        return cls.objects.create(
            facility_id=facility_id,
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            details=details,
        )

    def __str__(self):
        who = self.user.get_username() if self.user else "system"
        return f"{self.created_at} - {who} - {self.action}"
