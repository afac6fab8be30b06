# etest_lims/pagination.py

from django.conf import settings
from rest_framework.pagination import LimitOffsetPagination


class DefaultPagination(LimitOffsetPagination):
    """limit/offset paging, capped at 100 rows per page."""

    default_limit = settings.ETEST_DEFAULT_PAGE_SIZE
    max_limit = 100
