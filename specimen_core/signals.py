# specimen_core/signals.py
from __future__ import annotations

import logging
from threading import local

from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from specimen_core.models import AuditLog, Batch, Specimen

logger = logging.getLogger(__name__)

# ===============================================================
# Thread-local user storage
# ===============================================================
_state = local()


def set_current_user(user):
    _state.user = user


def get_current_user():
    return getattr(_state, "user", None)


# ===============================================================
# Audit helper
# ===============================================================
def record_audit(action: str, *, facility_id=None, user=None, **details) -> None:
    """
    Write one AuditLog row. Never breaks the caller.

    Runs in its own savepoint so a failed insert does not poison the
    surrounding service transaction.
    """
    if user is None:
        user = get_current_user()
    try:
        with transaction.atomic():
            AuditLog.record(action, facility_id=facility_id, user=user, **details)
    except Exception:
        logger.exception("Audit log write failed for %s", action)


# ===============================================================
# CREATE audit
# ===============================================================
@receiver(post_save, sender=Batch)
def audit_batch_opened(sender, instance: Batch, created: bool, **kwargs):
    if not created:
        return
    record_audit(
        "BATCH_OPENED",
        facility_id=instance.facility_id,
        batch_id=instance.pk,
    )


@receiver(post_save, sender=Specimen)
def audit_specimen_created(sender, instance: Specimen, created: bool, **kwargs):
    if not created:
        return
    record_audit(
        "SPECIMEN_CREATED",
        facility_id=instance.batch.facility_id,
        user=instance.created_by,
        specimen_id=instance.pk,
        batch_id=instance.batch_id,
        position=instance.position,
        program=instance.program,
    )


# ===============================================================
# DELETE audit
# ===============================================================
@receiver(post_delete, sender=Specimen)
def audit_specimen_deleted(sender, instance: Specimen, **kwargs):
    record_audit(
        "SPECIMEN_DELETED",
        facility_id=instance.batch.facility_id,
        specimen_id=instance.pk,
        batch_id=instance.batch_id,
        position=instance.position,
    )
