import uuid

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        with logger.contextualize(request_id=request.state.request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response
