"""
Core manager: owns shared infrastructure and ties the modules together.

Startup order:
1. create tables
2. initialize modules one by one (auth first, admin last)
3. bind module routes: public bootstrap routes, then authenticated routes
"""
from datetime import timedelta
from typing import Callable, Iterable

from fastapi import Depends, FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from signflow.core import config
from signflow.core.config import MailConfig
from signflow.core.database.engine import build_session_factory, init_db
from signflow.core.dispatcher import RequestDispatcher
from signflow.core.modules.base import ModuleContext, ModuleFactory
from signflow.core.modules.registry import ModuleRegistry
from signflow.core.routing import RouteTable
from signflow.core.security import ADMIN_ROLE, AuthGateway
from signflow.utils import get_logger


log = get_logger(__name__)

HEALTH_PATH = "/health"


class CoreManager:
    """
    Args:
        engine: Database engine; the manager disposes it at shutdown
        jwt_secret: Token signing secret
        mail_config: Outbound mail settings lent to modules
        factories: Ordered module factories
        route_table: Route -> permission table
        prefix: Versioned API prefix
        handler_timeout: Deadline in seconds for each module handler call
    """

    def __init__(
        self,
        engine: AsyncEngine,
        jwt_secret: str,
        mail_config: MailConfig,
        factories: Iterable[ModuleFactory],
        route_table: RouteTable,
        prefix: str = config.API_PREFIX,
        handler_timeout: float = config.HANDLER_TIMEOUT_SECONDS,
        token_lifetime: timedelta = timedelta(hours=config.JWT_EXPIRES_HOURS),
    ):
        self.engine = engine
        self.factories = list(factories)
        self.prefix = prefix
        self.dispatcher = RequestDispatcher(
            gateway=AuthGateway(jwt_secret, expires_in=token_lifetime),
            route_table=route_table,
            prefix=prefix,
            timeout=handler_timeout,
        )
        self.gateway = self.dispatcher.gateway
        self.gateway.public_paths = frozenset([*self.dispatcher.public_paths(), HEALTH_PATH])
        self.context = ModuleContext(
            db=build_session_factory(engine),
            gateway=self.gateway,
            mail=mail_config,
        )
        self.registry = ModuleRegistry(self.context)
        self.started = False

    async def start(self, app: FastAPI, public_decorator: Callable[[Callable], Callable] | None = None) -> None:
        """
        Initialize every module and mount its routes on the app.

        public_decorator is applied to the unauthenticated bootstrap routes.
        """
        if self.started:
            return
        log.info("Initializing core manager...")
        await init_db(self.engine)
        await self.registry.initialize_all(self.factories)

        public, protected = self.dispatcher.build_routers(self.registry, public_decorator)
        protected.add_api_route(
            f"{self.prefix}/modules",
            self.list_modules,
            methods=["GET"],
            dependencies=[Depends(self.gateway.require_role(ADMIN_ROLE))],
            tags=["core"],
        )
        app.include_router(public)
        app.include_router(protected)
        self.started = True
        log.info("Core manager ready with modules: %s", ", ".join(self.registry.names()))

    async def stop(self) -> None:
        await self.registry.cleanup_all()
        await self.engine.dispose()
        log.info("Core manager stopped")

    async def health(self) -> dict:
        return await self.registry.aggregate_health()

    async def list_modules(self) -> list[dict]:
        modules = []
        for module in self.registry:
            stats = await module.get_stats()
            stats["permissions"] = sorted(module.descriptor.permissions)
            stats["routes"] = list(module.descriptor.routes)
            modules.append(stats)
        return modules
