"""
CORS headers for endpoints called directly from the storefront and the gateway.
"""
from django.conf import settings
from django.http import HttpResponse

CORS_ALLOWED_HEADERS = 'authorization, x-client-info, apikey, content-type, x-paystack-signature'


def cors_headers():
    return {
        'Access-Control-Allow-Origin': getattr(settings, 'CORS_ALLOWED_ORIGIN', '*'),
        'Access-Control-Allow-Headers': CORS_ALLOWED_HEADERS,
        'Access-Control-Allow-Methods': 'POST, OPTIONS',
    }


class CorsMixin:
    """
    Answers preflight with an empty body and stamps CORS headers on every
    response, including ones produced by mixins further down the MRO.
    Must come first in the base class list.
    """

    def dispatch(self, request, *args, **kwargs):
        if request.method == 'OPTIONS':
            response = HttpResponse(status=200)
        else:
            response = super().dispatch(request, *args, **kwargs)
        for key, value in cors_headers().items():
            response[key] = value
        return response
