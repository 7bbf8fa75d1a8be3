from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from signflow.core import config
from signflow.core.database.engine import build_engine
from signflow.core.errors import AppError, FieldError, ValidationError, classify
from signflow.core.manager import CoreManager
from signflow.core.route_permissions import default_route_table
from signflow.features.catalog import default_module_factories
from signflow.utils import get_logger


log = get_logger(__name__)

VERSION = "1.0.0"


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.signflow."), timing=timing, tags=tags))


def build_manager() -> CoreManager:
    return CoreManager(
        engine=build_engine(),
        jwt_secret=config.JWT_SECRET,
        mail_config=config.load_mail_config(),
        factories=default_module_factories(),
        route_table=default_route_table(),
    )


def create_app(manager: CoreManager | None = None) -> FastAPI:
    """
    Build the HTTP application around a CoreManager.

    Module routes are mounted when the app starts, so the app must be run
    (or entered as a TestClient context) before they respond.
    """
    manager = manager or build_manager()
    log.info("Initializing server")
    app = FastAPI(
        title="Signflow API",
        description="Document signing and certification backend",
        version=VERSION,
        docs_url="/docs" if config.ENABLE_DOCS else None,
        redoc_url="/redoc" if config.ENABLE_DOCS else None,
        openapi_url="/openapi.json" if config.ENABLE_DOCS else None
    )
    app.state.manager = manager
    limiter = Limiter(key_func=get_authorization_header)
    app.state.limiter = limiter

    app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

    if config.ENABLE_DOCS:
        log.warning("Docs enabled")
    if config.ALLOW_ORIGIN:
        log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[config.ALLOW_ORIGIN],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(AppError)
    async def app_error_handler(_request: Request, exc: AppError):
        outcome = classify(exc)
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        fields = []
        for error in exc.errors():
            if "loc" not in error or "msg" not in error:
                continue
            key = error["loc"][-1]
            fields.append(FieldError(str(key), error["msg"]))
        log.info("Request validation error %s", fields)
        outcome = classify(ValidationError(fields))
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
        return JSONResponse({"error": "Too Many Requests", "message": "You are going too fast"}, status_code=429)

    @app.on_event("startup")
    async def startup():
        await manager.start(app, public_decorator=limiter.limit(config.RATE_LIMIT))

    @app.on_event("shutdown")
    async def shutdown():
        await manager.stop()

    @app.get("/")
    async def root():
        """Root endpoint - API overview."""
        return {
            "message": "Signflow API",
            "version": VERSION,
            "status": "online",
            "docs": "/docs" if config.ENABLE_DOCS else None,
            "api_prefix": manager.prefix,
            "modules": manager.registry.names(),
            "authentication": {
                "info": "Protected endpoints require Bearer token in Authorization header",
                "public_endpoints": sorted(manager.gateway.public_paths),
            },
        }

    @app.get("/health")
    async def health():
        """Aggregate health of every registered module."""
        return await manager.health()

    return app


app = create_app()
