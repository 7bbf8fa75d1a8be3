import asyncio

from signflow.core.config import MailConfig
from signflow.core.modules.base import (
    BaseModule,
    HealthReport,
    ModuleContext,
    ModuleDescriptor,
    ModuleFactory,
    ModuleStage,
)
from signflow.core.modules.registry import ModuleRegistry
from signflow.core.security import AuthGateway


def make_context() -> ModuleContext:
    return ModuleContext(db=None, gateway=AuthGateway("registry-secret"), mail=MailConfig())


def module_class(name, journal, *, fail_init=False, health="healthy", enabled=True, dependencies=()):
    class FakeModule(BaseModule):
        descriptor = ModuleDescriptor(name=name, version="1.0.0", enabled=enabled, dependencies=dependencies)

        async def initialize(self):
            if fail_init:
                raise RuntimeError(f"{name} could not connect")
            await super().initialize()
            journal.append(("init", name))

        async def cleanup(self):
            journal.append(("cleanup", name))

        async def get_health(self):
            if health == "raise":
                raise ConnectionError("health check exploded")
            return HealthReport(status=health)

        def get_routes(self):
            return {}

    FakeModule.__name__ = f"{name.title()}Module"
    return FakeModule


def run(coro):
    return asyncio.run(coro)


def test_failed_module_is_excluded_and_others_start():
    journal = []
    registry = ModuleRegistry(make_context())

    def broken_factory(context):
        raise ValueError("bad configuration")

    run(registry.initialize_all([
        ModuleFactory(module_class("auth", journal)),
        ModuleFactory(broken_factory),
        ModuleFactory(module_class("payments", journal, fail_init=True)),
        ModuleFactory(module_class("documents", journal)),
    ]))

    assert registry.names() == ["auth", "documents"]
    assert "payments" not in registry
    assert set(registry.failed) == {"broken_factory", "PaymentsModule"}


def test_modules_start_by_stage_then_declaration_order():
    journal = []
    registry = ModuleRegistry(make_context())

    run(registry.initialize_all([
        ModuleFactory(module_class("analytics", journal), ModuleStage.ADMIN),
        ModuleFactory(module_class("templates", journal)),
        ModuleFactory(module_class("auth", journal), ModuleStage.AUTH),
        ModuleFactory(module_class("documents", journal)),
    ]))

    assert registry.names() == ["auth", "templates", "documents", "analytics"]
    assert journal == [("init", n) for n in ["auth", "templates", "documents", "analytics"]]


def test_duplicate_name_keeps_the_first_module():
    journal = []
    registry = ModuleRegistry(make_context())
    first = module_class("coupons", journal)

    run(registry.initialize_all([ModuleFactory(first), ModuleFactory(module_class("coupons", journal))]))

    assert len(registry) == 1
    assert isinstance(registry.get("coupons"), first)
    assert journal == [("init", "coupons")]


def test_disabled_module_is_skipped_without_failure():
    registry = ModuleRegistry(make_context())

    run(registry.initialize_all([ModuleFactory(module_class("identity", [], enabled=False))]))

    assert len(registry) == 0
    assert registry.failed == {}


def test_missing_dependency_only_warns():
    registry = ModuleRegistry(make_context())

    run(registry.initialize_all([ModuleFactory(module_class("documents", [], dependencies=("templates",)))]))

    assert "documents" in registry


def test_health_is_degraded_when_a_check_fails_or_raises():
    registry = ModuleRegistry(make_context())
    run(registry.initialize_all([
        ModuleFactory(module_class("auth", [])),
        ModuleFactory(module_class("payments", [], health="unhealthy")),
        ModuleFactory(module_class("coupons", [], health="raise")),
    ]))

    health = run(registry.aggregate_health())

    assert health["status"] == "degraded"
    assert health["modules"]["auth"]["status"] == "healthy"
    assert health["modules"]["payments"]["status"] == "unhealthy"
    assert health["modules"]["coupons"]["details"]["error"] == "health check exploded"


def test_health_is_healthy_when_every_module_is():
    registry = ModuleRegistry(make_context())
    run(registry.initialize_all([ModuleFactory(module_class("auth", [])), ModuleFactory(module_class("users", []))]))

    assert run(registry.aggregate_health())["status"] == "healthy"


def test_failed_modules_are_absent_from_health():
    registry = ModuleRegistry(make_context())
    run(registry.initialize_all([
        ModuleFactory(module_class("auth", [])),
        ModuleFactory(module_class("payments", [], fail_init=True)),
    ]))

    health = run(registry.aggregate_health())

    assert health == {"status": "healthy", "modules": {"auth": {"status": "healthy", "details": {}}}}


def test_cleanup_runs_in_reverse_registration_order():
    journal = []
    registry = ModuleRegistry(make_context())
    run(registry.initialize_all([
        ModuleFactory(module_class("auth", journal), ModuleStage.AUTH),
        ModuleFactory(module_class("templates", journal)),
        ModuleFactory(module_class("documents", journal)),
    ]))
    journal.clear()

    run(registry.cleanup_all())

    assert journal == [("cleanup", "documents"), ("cleanup", "templates"), ("cleanup", "auth")]
