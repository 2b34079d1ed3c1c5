"""Request hygiene middleware: request ids and body size limits.

``RequestIdMiddleware`` gives every request an identifier, read from the
incoming ``X-Request-Id`` header or generated as a UUIDv4. The id is stored
on ``request.request_id`` and in ``REQUEST_ID_CTX`` so log filters and the
outgoing HTTP gateways can use it without passing it around; the response
echoes it in ``X-Request-ID``.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
exceeds ``settings.API_MAX_BYTES`` with 413.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"   # header to add to outgoing responses

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Echo the id and restore the ContextVar for the next request on this thread."""
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        limit = getattr(settings, "API_MAX_BYTES", 1024 * 1024)
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse(
                {"detail": "PAYLOAD_TOO_LARGE", "message": f"Request body exceeds {limit} bytes"},
                status=413,
            )
        return None
