# specimen_core/management/commands/dispatch_batch.py

from datetime import date

from django.core.management.base import BaseCommand, CommandError
from rest_framework.exceptions import APIException

from specimen_core.models import Batch, Facility
from specimen_core.services.batches import dispatch_batch


class Command(BaseCommand):
    help = "Dispatch a facility batch, closing it to new specimens"

    def add_arguments(self, parser):
        parser.add_argument("facility", help="Facility code")
        parser.add_argument(
            "--batch",
            type=int,
            help="Batch id (defaults to the facility's open batch)",
        )
        parser.add_argument(
            "--date",
            type=date.fromisoformat,
            help="Dispatch date, YYYY-MM-DD (defaults to today)",
        )

    def handle(self, *args, **options):
        facility = Facility.objects.filter(code=options["facility"]).first()
        if facility is None:
            raise CommandError(f"Unknown facility code: {options['facility']}")

        batch_id = options.get("batch")
        if batch_id is None:
            batch = Batch.objects.for_facility(facility.pk).open().first()
            if batch is None:
                raise CommandError(f"Facility {facility.code} has no open batch.")
            batch_id = batch.pk

        try:
            batch = dispatch_batch(
                batch_id=batch_id,
                facility_id=facility.pk,
                dispatched_on=options.get("date"),
            )
        except APIException as exc:
            raise CommandError(str(exc.detail))

        self.stdout.write(
            self.style.SUCCESS(
                f"Dispatched batch {batch.batch_number} "
                f"({batch.specimens.count()} specimens) on {batch.date_dispatched_from_facility}"
            )
        )
