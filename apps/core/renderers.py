"""
JSON renderer that wraps successful responses in the API envelope.

Error responses and paginated lists are already enveloped by
`apps.core.error_handlers` and `apps.core.pagination`, and pass through.
"""

from rest_framework.renderers import JSONRenderer

from .responses import ENVELOPE_KEYS, envelope


def is_envelope(data):
    return isinstance(data, dict) and ENVELOPE_KEYS <= data.keys()


class EnvelopeJSONRenderer(JSONRenderer):

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = (renderer_context or {}).get('response')
        if response is not None and response.status_code == 204:
            return b''

        if not is_envelope(data):
            success = response is None or response.status_code < 400
            data = envelope(success=success, data=data)
        return super().render(data, accepted_media_type, renderer_context)
