from typing import Sequence

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send

from logger_config import setup_logger

logger = setup_logger()


class AllowListCORSMiddleware(CORSMiddleware):
    """CORS for an explicit origin allow-list.

    Unlike the stock middleware, a request from an origin outside the list is
    refused outright instead of being served without CORS headers. Requests
    without an Origin header pass through. Preflights from listed origins
    always answer 204 with the configured method and header lists.
    """

    def __init__(
        self,
        app: ASGIApp,
        allow_origins: Sequence[str] = (),
        allow_methods: Sequence[str] = ("GET",),
        allow_headers: Sequence[str] = (),
        allow_credentials: bool = False,
    ) -> None:
        super().__init__(
            app,
            allow_origins=allow_origins,
            allow_methods=allow_methods,
            allow_headers=allow_headers,
            allow_credentials=allow_credentials,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            origin = Headers(scope=scope).get("origin")
            if origin is not None and not self.is_allowed_origin(origin=origin):
                logger.warning(f"Rejected request from origin {origin} to {scope['path']}")
                response = PlainTextResponse("Not allowed by CORS", status_code=403)
                await response(scope, receive, send)
                return
        await super().__call__(scope, receive, send)

    def preflight_response(self, request_headers: Headers) -> Response:
        # Origin was checked in __call__; the browser enforces methods and headers
        headers = dict(self.preflight_headers)
        headers["Access-Control-Allow-Origin"] = request_headers["origin"]
        return Response(status_code=204, headers=headers)
