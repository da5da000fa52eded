import logging

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from core.router import Router

logger = logging.getLogger(__name__)

PROXIED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]


def create_app(router: Router) -> FastAPI:
    """
    Build the front-of-pool app: every path and method is handed to the router.
    """
    app = FastAPI(
        default_response_class=ORJSONResponse,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.api_route("/{path:path}", methods=PROXIED_METHODS)
    async def proxy(request: Request, path: str):
        logger.debug(f"Routing request for path '{path}'")
        return await router.handle(request, path)

    return app
