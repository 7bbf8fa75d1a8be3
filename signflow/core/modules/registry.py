"""
Module registry: builds, initializes, looks up and health-checks modules.

Initialization is strictly sequential. A module that fails to build or
initialize is logged and left out; the rest of the system still starts.
"""
from typing import Any, Iterable, Iterator

from signflow.core.errors import ModuleRegistrationError
from signflow.core.modules.base import BaseModule, ModuleContext, ModuleFactory
from signflow.utils import get_logger


log = get_logger(__name__)


class ModuleRegistry:

    def __init__(self, context: ModuleContext):
        self._context = context
        # Insertion order is registration order
        self._modules: dict[str, BaseModule] = {}
        self.failed: dict[str, str] = {}

    async def register(self, factory: ModuleFactory) -> BaseModule | None:
        """
        Build and initialize one module.

        Returns the module on success, None if it was excluded.
        """
        try:
            module = factory.build(self._context)
            if not module.enabled:
                log.info("Skipping disabled module %s", module.name)
                return None
            if module.name in self._modules:
                raise ModuleRegistrationError(f"Module name '{module.name}' is already registered")

            missing = module.missing_dependencies(self.names())
            if missing:
                log.warning("Module %s registered before its dependencies: %s", module.name, missing)

            await module.initialize()
        except Exception as e:
            log.error("Failed to initialize module %s: %s", factory.label, e, exc_info=True)
            self.failed[factory.label] = str(e)
            return None

        self._modules[module.name] = module
        log.info("-> Module %s v%s registered", module.name, module.version)
        return module

    async def initialize_all(self, factories: Iterable[ModuleFactory]) -> None:
        """Register every factory one at a time, ordered by stage."""
        ordered = sorted(factories, key=lambda f: f.stage)
        for factory in ordered:
            await self.register(factory)
        log.info("Module registry ready: %d registered, %d failed", len(self._modules), len(self.failed))

    def get(self, name: str) -> BaseModule | None:
        return self._modules.get(name)

    def names(self) -> list[str]:
        return list(self._modules)

    def modules(self) -> list[BaseModule]:
        return list(self._modules.values())

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __iter__(self) -> Iterator[BaseModule]:
        return iter(self.modules())

    def __len__(self) -> int:
        return len(self._modules)

    async def aggregate_health(self) -> dict[str, Any]:
        """
        Check the health of every registered module.

        Overall status is "healthy" only when every module is healthy.
        Modules that never registered are not reported.
        """
        reports: dict[str, Any] = {}
        all_healthy = True
        for module in self.modules():
            try:
                report = await module.get_health()
                healthy = report.healthy
                reports[module.name] = report.model_dump()
            except Exception as e:
                log.warning("Health check for %s raised: %s", module.name, e)
                healthy = False
                reports[module.name] = {"status": "unhealthy", "details": {"error": str(e)}}
            all_healthy = all_healthy and healthy

        return {"status": "healthy" if all_healthy else "degraded", "modules": reports}

    async def cleanup_all(self) -> None:
        """Clean up modules in reverse registration order."""
        for module in reversed(self.modules()):
            try:
                await module.cleanup()
            except Exception as e:
                log.error("Cleanup of module %s failed: %s", module.name, e, exc_info=True)
