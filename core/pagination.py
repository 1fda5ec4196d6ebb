"""
Pagination for list endpoints.

Referenced by ``REST_FRAMEWORK['DEFAULT_PAGINATION_CLASS']``, so this module
must not import ``rest_framework.generics``.
"""

from rest_framework.pagination import PageNumberPagination


class MarketplacePagination(PageNumberPagination):
    """Page-number pagination with a client-selectable page size (``limit``)."""
    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100
