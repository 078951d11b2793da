"""Request context middleware.

Propagates the request ID and the client identity to logging, so every log
line written while serving a request can be correlated.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from bahngate.observability.logging import client_identity_var, request_id_var
from bahngate.ratelimit.identity import client_identity


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware for propagating request context.

    Headers:
    - x-request-id: Unique ID for this request (passed through or generated)
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        identity = client_identity(request.headers)

        request_token = request_id_var.set(request_id)
        client_token = client_identity_var.set(identity)

        try:
            request.state.request_id = request_id
            request.state.client_identity = identity

            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response
        finally:
            request_id_var.reset(request_token)
            client_identity_var.reset(client_token)
