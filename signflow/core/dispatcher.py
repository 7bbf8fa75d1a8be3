"""
Request dispatcher: turns module route tables into live FastAPI endpoints.

Each declared route becomes one RouteBinding. On every request the
dispatcher merges path, query and body parameters into a single payload,
injects the caller's AuthorizationContext, runs the handler under a
deadline, and hands any failure to the error classifier.
"""
import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse, Response

from signflow.core.errors import (
    MalformedBodyError,
    RouteConflictError,
    UpstreamTimeoutError,
    ValidationError,
    classify,
)
from signflow.core.modules.base import Handler, RequestPayload
from signflow.core.modules.registry import ModuleRegistry
from signflow.core.routing import RouteTable, join_path, parse_route
from signflow.core.security import AuthGateway
from signflow.utils import get_logger


log = get_logger(__name__)

# Reserved payload key holding the caller's AuthorizationContext
USER_KEY = "user"

# Routes reachable without a token, with their fixed success status
BOOTSTRAP_ROUTES: dict[tuple[str, str], int] = {
    ("auth", "POST /login"): status.HTTP_200_OK,
    ("auth", "POST /register"): status.HTTP_201_CREATED,
}

DISCONNECT_POLL_SECONDS = 0.5


class ClientDisconnected(Exception):
    pass


@dataclass(frozen=True)
class RouteBinding:
    module: str
    method: str
    full_path: str
    required_permissions: frozenset[str]
    handler: Handler
    success_status: int

    @property
    def key(self) -> tuple[str, str]:
        return self.method, self.full_path


async def read_payload(request: Request) -> RequestPayload:
    """Merge path params, query params and JSON body fields into one mapping."""
    raw = await request.body()
    body: Any = {}
    if raw.strip():
        try:
            body = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise MalformedBodyError()
    if not isinstance(body, dict):
        raise ValidationError.single("body", "Request body must be a JSON object")

    payload: RequestPayload = {}
    payload.update(request.path_params)
    payload.update(request.query_params)
    payload.update(body)
    payload[USER_KEY] = getattr(request.state, "auth", None)
    return payload


def error_response(exc: BaseException) -> JSONResponse:
    outcome = classify(exc)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


class RequestDispatcher:
    """
    Binds every registered module's routes under the API prefix.

    Args:
        gateway: AuthGateway used for authentication and permission checks
        route_table: Operator-owned route -> permission table
        prefix: Versioned API prefix, e.g. "/api/v1"
        timeout: Deadline in seconds for each handler call
    """

    def __init__(self, gateway: AuthGateway, route_table: RouteTable, prefix: str, timeout: float):
        self.gateway = gateway
        self.route_table = route_table
        self.prefix = prefix
        self.timeout = timeout
        self.bindings: dict[tuple[str, str], RouteBinding] = {}

    def public_paths(self) -> list[str]:
        paths = []
        for module, route in BOOTSTRAP_ROUTES:
            section = self.route_table.section(module)
            if section is None:
                continue
            _, path = parse_route(route)
            paths.append(join_path(self.prefix + section.prefix, path))
        return paths

    def build_bindings(self, registry: ModuleRegistry) -> list[RouteBinding]:
        """
        Join each module's declared routes with the route table.

        Raises:
            RouteConflictError: if two bindings share a method and path
        """
        built = []
        for module in registry:
            section = self.route_table.section(module.name)
            if section is None:
                log.warning("No route table section for module %s, its routes stay unbound", module.name)
                continue

            handlers = module.get_routes()
            for route in module.descriptor.routes:
                handler = handlers.get(route)
                if handler is None:
                    log.warning("Module %s declares '%s' without a handler", module.name, route)
                    continue

                method, path = parse_route(route)
                full_path = join_path(self.prefix + section.prefix, path)
                required = self.route_table.required_permissions(module.name, route)
                if required is None:
                    log.warning("Route %s %s has no permission rule, any authenticated caller allowed", method, full_path)
                    required = frozenset()

                success_status = BOOTSTRAP_ROUTES.get(
                    (module.name, f"{method} {path}"),
                    status.HTTP_201_CREATED if method == "POST" else status.HTTP_200_OK,
                )
                binding = RouteBinding(module.name, method, full_path, required, handler, success_status)
                if binding.key in self.bindings:
                    owner = self.bindings[binding.key].module
                    raise RouteConflictError(f"{method} {full_path} is bound by both {owner} and {module.name}")
                self.bindings[binding.key] = binding
                built.append(binding)
        return built

    def build_routers(
        self,
        registry: ModuleRegistry,
        public_decorator: Callable[[Callable], Callable] | None = None,
    ) -> tuple[APIRouter, APIRouter]:
        """
        Build the public router (login, register) and the authenticated router.

        The public router must be mounted before the authenticated one.
        public_decorator wraps every public endpoint, e.g. a rate limit.
        """
        public = APIRouter()
        protected = APIRouter(dependencies=[Depends(self.gateway.authenticate)])
        public_paths = set(self.public_paths())

        for binding in self.build_bindings(registry):
            is_public = binding.full_path in public_paths
            target = public if is_public else protected
            endpoint = self._endpoint(binding)
            if is_public and public_decorator is not None:
                endpoint = public_decorator(endpoint)
            dependencies = []
            if binding.required_permissions:
                dependencies.append(Depends(self.gateway.require_permission(*sorted(binding.required_permissions))))
            target.add_api_route(
                binding.full_path,
                endpoint,
                methods=[binding.method],
                dependencies=dependencies,
                name=f"{binding.module}:{binding.method} {binding.full_path}",
                tags=[binding.module],
            )
            log.debug("Bound %s %s (%s)", binding.method, binding.full_path, ", ".join(sorted(binding.required_permissions)) or "authenticated")

        return public, protected

    def _endpoint(self, binding: RouteBinding):
        async def endpoint(request: Request) -> Response:
            try:
                payload = await read_payload(request)
                result = await self._invoke(binding, payload, request)
            except ClientDisconnected:
                log.info("Client disconnected during %s %s, handler cancelled", binding.method, binding.full_path)
                return Response(status_code=499)
            except Exception as e:
                return error_response(e)
            return JSONResponse(status_code=binding.success_status, content=jsonable_encoder(result))

        # Unique per route; rate limits are keyed on the endpoint name
        endpoint.__name__ = "_".join([binding.module, binding.method.lower(), *re.findall(r"\w+", binding.full_path)])
        return endpoint

    async def _invoke(self, binding: RouteBinding, payload: RequestPayload, request: Request) -> Any:
        """
        Run the handler, bounded by the deadline and cancelled if the client leaves.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        task = asyncio.ensure_future(binding.handler(payload))
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise UpstreamTimeoutError(
                        f"{binding.method} {binding.full_path} did not complete within {self.timeout:g}s"
                    )
                done, _ = await asyncio.wait({task}, timeout=min(remaining, DISCONNECT_POLL_SECONDS))
                if done:
                    return task.result()
                if await request.is_disconnected():
                    raise ClientDisconnected()
        finally:
            if not task.done():
                task.cancel()
