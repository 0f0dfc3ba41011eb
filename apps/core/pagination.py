from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class TenantAwarePagination(PageNumberPagination):
    """Page-number pagination returning the API envelope with paging metadata."""
    page_size = 25
    page_size_query_param = 'page_size'
    max_page_size = 100

    def get_paginated_response(self, data):
        page = self.page
        return Response({
            'success': True,
            'data': data,
            'message': None,
            'errors': None,
            'pagination': {
                'page': page.number,
                'page_size': page.paginator.per_page,
                'total_count': page.paginator.count,
                'total_pages': page.paginator.num_pages,
                'has_next': page.has_next(),
                'has_previous': page.has_previous(),
            },
        })

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'data': schema,
                'message': {'type': 'string', 'nullable': True},
                'errors': {'type': 'array', 'items': {'type': 'string'}, 'nullable': True},
                'pagination': {
                    'type': 'object',
                    'properties': {
                        'page': {'type': 'integer'},
                        'page_size': {'type': 'integer'},
                        'total_count': {'type': 'integer'},
                        'total_pages': {'type': 'integer'},
                        'has_next': {'type': 'boolean'},
                        'has_previous': {'type': 'boolean'},
                    },
                },
            },
        }
