# specimen_core/filters.py
import django_filters as df

from .models import Batch


class BatchFilter(df.FilterSet):
    is_open = df.BooleanFilter(field_name="date_dispatched_from_facility", lookup_expr="isnull")
    batch_number = df.CharFilter(field_name="batch_number", lookup_expr="icontains")
    created_at = df.DateFromToRangeFilter()
    date_dispatched_from_facility = df.DateFromToRangeFilter()

    class Meta:
        model = Batch
        fields = ["is_open", "batch_number", "created_at", "date_dispatched_from_facility"]
