"""
Contract every business module implements.

A module is built by a factory from a ModuleContext, initialized once by the
registry, exposes a route table of "METHOD /path" -> async handler, reports
its health, and is cleaned up at shutdown.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signflow.core.config import MailConfig
from signflow.core.security import AuthGateway
from signflow.utils import get_logger


RequestPayload = dict[str, Any]
Handler = Callable[[RequestPayload], Awaitable[Any]]

HealthStatus = Literal["healthy", "unhealthy"]


class ModuleDescriptor(BaseModel):
    """Static description of a module. Immutable once the module is built."""
    name: str = Field(..., min_length=1)
    version: str
    enabled: bool = True
    dependencies: tuple[str, ...] = ()
    permissions: frozenset[str] = frozenset()
    routes: tuple[str, ...] = ()

    model_config = {"frozen": True}


class HealthReport(BaseModel):
    status: HealthStatus
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


@dataclass(frozen=True)
class ModuleContext:
    """
    Shared infrastructure lent to modules by the CoreManager.

    The manager owns the lifetime of everything in here; modules only borrow.
    """
    db: async_sessionmaker[AsyncSession]
    gateway: AuthGateway
    mail: MailConfig


class ModuleStage(IntEnum):
    """Initialization order. Lower stages are fully registered first."""
    AUTH = 0
    DATA = 1
    ADMIN = 2


@dataclass(frozen=True)
class ModuleFactory:
    build: Callable[[ModuleContext], "BaseModule"]
    stage: ModuleStage = ModuleStage.DATA

    @property
    def label(self) -> str:
        return getattr(self.build, "__name__", repr(self.build))


class BaseModule(ABC):
    """
    Base class for all business modules.

    Subclasses set `descriptor` and implement `get_routes`. The default
    health check runs `SELECT 1` against `health_table` when one is set.
    """
    descriptor: ModuleDescriptor
    health_table: str | None = None

    def __init__(self, context: ModuleContext):
        self.context = context
        self.db = context.db
        self.initialized = False
        self.log = get_logger(f"signflow.modules.{self.name}")

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def version(self) -> str:
        return self.descriptor.version

    @property
    def enabled(self) -> bool:
        return self.descriptor.enabled

    async def initialize(self) -> None:
        self.initialized = True
        self.log.info("%s v%s initialized", self.name, self.version)

    async def cleanup(self) -> None:
        self.initialized = False

    async def get_health(self) -> HealthReport:
        if self.health_table is None:
            return HealthReport(status="healthy", details={"service": "active"})
        key = f"db_{self.health_table}"
        try:
            async with self.db() as session:
                await session.execute(text(f"SELECT 1 FROM {self.health_table} LIMIT 1"))
            return HealthReport(status="healthy", details={key: "reachable"})
        except Exception as e:
            return HealthReport(status="unhealthy", details={key: str(e)})

    @abstractmethod
    def get_routes(self) -> dict[str, Handler]:
        """Map of "METHOD /path" to handler, matching descriptor.routes."""

    def missing_dependencies(self, available: list[str]) -> list[str]:
        return [dep for dep in self.descriptor.dependencies if dep not in available]

    async def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "initialized": self.initialized,
            "health": (await self.get_health()).model_dump(),
        }
