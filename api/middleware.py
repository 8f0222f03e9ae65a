"""Request-scoped middleware for API requests."""

from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.merchant_context import set_current_shop, clear_current_shop

SHOP_HEADER = "X-Shop-Domain"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class MerchantContextMiddleware(BaseHTTPMiddleware):
    """Middleware that identifies the shop and sets merchant context.

    For shop-scoped routes:
    1. Reads the shop domain from the X-Shop-Domain header
    2. Sets it in request.state and merchant context (for RLS)
    3. Clears context after request completes

    The header is trusted: the storefront proxy in front of this service
    has already authenticated the merchant. Public paths bypass it.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        shop = (request.headers.get(SHOP_HEADER) or "").strip().lower()
        if not shop:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    f"{SHOP_HEADER} header required",
                    request_id_of(request),
                ).model_dump(mode="json"),
            )

        set_current_shop(shop)
        request.state.shop = shop
        try:
            return await call_next(request)
        finally:
            clear_current_shop()


def request_id_of(request: Request) -> str | None:
    """The ID RequestIDMiddleware assigned, if it ran."""
    return getattr(request.state, "request_id", None)
