"""
Role -> permission grants written into issued tokens.

Admins receive every permission here as well, although the gateway lets the
admin role through permission checks regardless of its token contents.
"""
from typing import Literal

Role = Literal["admin", "manager", "certifier", "operator", "client", "validator"]

ROLES: tuple[str, ...] = ("admin", "manager", "certifier", "operator", "client", "validator")

ALL_PERMISSIONS: frozenset[str] = frozenset({
    "documents:read", "documents:create", "documents:update", "documents:delete", "documents:transition",
    "templates:read", "templates:create", "templates:update", "templates:delete", "templates:upload_convert",
    "users:read", "users:create", "users:update", "users:delete", "users:activity_read",
    "coupons:read", "coupons:create", "coupons:validate", "coupons:apply", "coupons:usage_read",
    "payments:read", "payments:create", "payments:process", "payments:invoice",
    "identity:validate_rut", "identity:send_otp", "identity:verify_otp", "identity:verify_biometric",
    "analytics:read",
    "signatures:capture", "signatures:verify", "signatures:request_signing",
    "signatures:apply_handwritten", "signatures:certifier_upload",
    "api_tokens:create", "api_tokens:read", "api_tokens:update", "api_tokens:delete",
    "api_tokens:regenerate", "api_tokens:validate", "api_tokens:usage_read",
    "saas_roles:read", "saas_roles:create", "saas_roles:update", "saas_roles:delete",
    "saas_subscriptions:read", "saas_subscriptions:create", "saas_subscriptions:update", "saas_subscriptions:delete",
    "saas_analytics:read", "saas_analytics:export",
})

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": ALL_PERMISSIONS,
    "manager": frozenset({
        "documents:read", "documents:create", "documents:update", "documents:transition",
        "templates:read", "templates:create", "templates:update",
        "users:read", "users:create", "users:update",
        "coupons:read", "coupons:validate", "coupons:apply",
        "payments:read", "payments:create",
        "identity:validate_rut", "identity:send_otp", "identity:verify_otp",
        "analytics:read",
        "signatures:capture", "signatures:verify", "signatures:request_signing",
        "api_tokens:create", "api_tokens:read", "api_tokens:update", "api_tokens:delete",
        "api_tokens:regenerate", "api_tokens:validate", "api_tokens:usage_read",
    }),
    "certifier": frozenset({
        "documents:read", "documents:transition",
        "templates:read",
        "users:read",
        "identity:validate_rut", "identity:verify_biometric",
        "analytics:read",
        "signatures:verify", "signatures:certifier_upload",
    }),
    "operator": frozenset({
        "documents:read", "documents:create", "documents:update", "documents:transition",
        "templates:read",
        "users:read",
        "coupons:read", "coupons:validate", "coupons:apply",
        "payments:read", "payments:create", "payments:process",
        "identity:validate_rut", "identity:send_otp", "identity:verify_otp",
        "signatures:capture", "signatures:verify", "signatures:request_signing", "signatures:apply_handwritten",
    }),
    "client": frozenset({
        "documents:read", "documents:create",
        "coupons:validate", "coupons:apply",
        "payments:read", "payments:create", "payments:process",
        "identity:validate_rut", "identity:send_otp", "identity:verify_otp", "identity:verify_biometric",
        "signatures:capture", "signatures:verify", "signatures:apply_handwritten",
    }),
    "validator": frozenset({
        "documents:read",
        "identity:validate_rut", "identity:verify_biometric",
        "signatures:verify",
    }),
}


def permissions_for(role: str) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role, frozenset())
