from __future__ import annotations

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


def paginate(request, queryset, serializer_class, *, context: dict | None = None) -> Response:
    """
    List endpoints answer {count, next, previous, results}; ?page_size is capped at 100.
    """
    paginator = DefaultPagination()
    page = paginator.paginate_queryset(queryset, request)
    items = page if page is not None else queryset
    data = serializer_class(items, many=True, context={"request": request, **(context or {})}).data
    if page is None:
        return Response(data)
    return paginator.get_paginated_response(data)
