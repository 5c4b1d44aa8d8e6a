"""
Route multiplexer.

Dispatches a request to the handler registered for its exact (method, path).

Note:
    No prefix matching, path parameters or wildcards. The platform owns path
    templating; a function only sees the concrete path it was invoked with.
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, Set, Tuple

from ..models.context import HandlerContext
from ..models.request import Request
from ..models.response import APIError, Response
from .exceptions import RouteRegistrationError
from .handlers import Handler, as_handler

logger = logging.getLogger(__name__)

METHODS = frozenset({"DELETE", "GET", "PATCH", "POST", "PUT"})

ROUTE_NOT_FOUND = "route not found"
METHOD_NOT_ALLOWED = "method not allowed"


class Mux:
    """
    Handler dispatching to sub handlers by method and path.

    Routes are registered once at startup; dispatch never mutates the mux.
    """

    def __init__(self):
        self._routes: Set[str] = set()
        self._method_routes: Dict[str, Set[str]] = {}
        self._handlers: Dict[Tuple[str, str], Handler] = {}

    async def handle(self, ctx: HandlerContext, request: Request) -> Response:
        route = request.url or "/"

        if route not in self._routes:
            return Response(
                errors=[APIError(code=int(HTTPStatus.NOT_FOUND), message=ROUTE_NOT_FOUND)]
            )
        if route not in self._method_routes.get(request.method, ()):
            return Response(
                errors=[
                    APIError(code=int(HTTPStatus.METHOD_NOT_ALLOWED), message=METHOD_NOT_ALLOWED)
                ]
            )

        return await self._handlers[(request.method, route)].handle(ctx, request)

    def delete(self, route: str, handler: Any) -> None:
        self.register("DELETE", route, handler)

    def get(self, route: str, handler: Any) -> None:
        self.register("GET", route, handler)

    def patch(self, route: str, handler: Any) -> None:
        self.register("PATCH", route, handler)

    def post(self, route: str, handler: Any) -> None:
        self.register("POST", route, handler)

    def put(self, route: str, handler: Any) -> None:
        self.register("PUT", route, handler)

    def register(self, method: str, route: str, handler: Any) -> None:
        """
        Bind handler to (method, route).

        Raises:
            RouteRegistrationError: empty route, missing handler, unsupported
                method, or the pair is already registered.
        """
        if not route:
            raise RouteRegistrationError("route must be provided")
        if handler is None:
            raise RouteRegistrationError("handler must not be None")
        method = method.upper()
        if method not in METHODS:
            raise RouteRegistrationError(f"unsupported method: {method!r}")

        key = (method, route)
        if key in self._handlers:
            raise RouteRegistrationError(f"multiple handlers added for: {method} {route!r}")

        try:
            h = as_handler(handler)
        except TypeError as e:
            raise RouteRegistrationError(str(e)) from e

        self._routes.add(route)
        self._method_routes.setdefault(method, set()).add(route)
        self._handlers[key] = h
        logger.debug("Registered route %s %s", method, route)
