"""
The set of business modules the application ships with.

Order within a stage is preserved: auth comes first so tokens can be issued,
analytics and platform administration come last since they read every other
feature's tables.
"""
from signflow.core.modules.base import ModuleFactory, ModuleStage
from signflow.features.admin.module import AdminModule
from signflow.features.analytics.module import AnalyticsModule
from signflow.features.api_tokens.module import ApiTokensModule
from signflow.features.auth.module import AuthModule
from signflow.features.coupons.module import CouponsModule
from signflow.features.documents.module import DocumentsModule
from signflow.features.identity.module import IdentityModule
from signflow.features.payments.module import PaymentsModule
from signflow.features.signatures.module import SignaturesModule
from signflow.features.templates.module import TemplatesModule
from signflow.features.users.module import UsersModule


def default_module_factories() -> list[ModuleFactory]:
    return [
        ModuleFactory(AuthModule, ModuleStage.AUTH),
        ModuleFactory(UsersModule, ModuleStage.AUTH),
        ModuleFactory(ApiTokensModule, ModuleStage.AUTH),
        ModuleFactory(TemplatesModule),
        ModuleFactory(DocumentsModule),
        ModuleFactory(SignaturesModule),
        ModuleFactory(PaymentsModule),
        ModuleFactory(CouponsModule),
        ModuleFactory(IdentityModule),
        ModuleFactory(AnalyticsModule, ModuleStage.ADMIN),
        ModuleFactory(AdminModule, ModuleStage.ADMIN),
    ]
