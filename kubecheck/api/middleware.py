from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import os

OPEN_PATHS = ("/docs", "/openapi.json")


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(OPEN_PATHS):
            return await call_next(request)

        token = os.getenv("KUBECHECK_API_KEY", "kubecheck-secret")
        auth_header = request.headers.get("X-API-Key")
        if auth_header != token:
            return JSONResponse(status_code=403, content={"detail": "Unauthorized"})
        return await call_next(request)
