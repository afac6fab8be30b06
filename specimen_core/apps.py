# specimen_core/apps.py

from django.apps import AppConfig


class SpecimenCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "specimen_core"
    verbose_name = "Specimen tracking"

    def ready(self):
        from . import signals  # noqa
