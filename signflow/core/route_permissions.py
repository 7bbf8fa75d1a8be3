"""
Default route -> permission table for every business module.

Tighten or loosen a route here without touching module code. An empty list
means any authenticated caller may use the route.
"""
from signflow.core.routing import RouteTable


ROUTE_PERMISSIONS = {
    "auth": ("/auth", {
        "POST /login": [],
        "POST /register": [],
        "POST /logout": [],
        "GET /me": [],
    }),
    "templates": ("/templates", {
        "GET /": ["templates:read"],
        "GET /{template_id}": ["templates:read"],
        "POST /": ["templates:create"],
        "PUT /{template_id}": ["templates:update"],
        "DELETE /{template_id}": ["templates:delete"],
        "POST /upload-convert": ["templates:upload_convert"],
    }),
    "documents": ("/documents", {
        "GET /": ["documents:read"],
        "GET /{document_id}": ["documents:read"],
        "POST /": ["documents:create"],
        "PUT /{document_id}": ["documents:update"],
        "DELETE /{document_id}": ["documents:delete"],
        "POST /{document_id}/transition": ["documents:transition"],
    }),
    "users": ("/users", {
        "GET /": ["users:read"],
        "POST /": ["users:create"],
        "GET /{user_id}": ["users:read"],
        "PUT /{user_id}": ["users:update"],
        "DELETE /{user_id}": ["users:delete"],
        "GET /{user_id}/activity": ["users:activity_read"],
    }),
    "coupons": ("/coupons", {
        "GET /": ["coupons:read"],
        "POST /": ["coupons:create"],
        "POST /validate": ["coupons:validate"],
        "POST /apply": ["coupons:apply"],
        "GET /{coupon_id}/usage": ["coupons:usage_read"],
    }),
    "payments": ("/payments", {
        "POST /create": ["payments:create"],
        "POST /{payment_id}/process": ["payments:process"],
        "GET /history": ["payments:read"],
        "POST /{payment_id}/invoice": ["payments:invoice"],
    }),
    "identity": ("/identity", {
        "POST /validate-rut": ["identity:validate_rut"],
        "POST /send-otp": ["identity:send_otp"],
        "POST /verify-otp": ["identity:verify_otp"],
        "POST /verify-biometric": ["identity:verify_biometric"],
    }),
    "signatures": ("/signatures", {
        "POST /capture": ["signatures:capture"],
        "GET /{signature_id}/verify": ["signatures:verify"],
        "POST /request-signing": ["signatures:request_signing"],
        "POST /handwritten": ["signatures:apply_handwritten"],
        "POST /certifier-upload": ["signatures:certifier_upload"],
    }),
    "api_tokens": ("/api-tokens", {
        "POST /create": ["api_tokens:create"],
        "GET /list": ["api_tokens:read"],
        "POST /validate": ["api_tokens:validate"],
        "GET /{token_id}": ["api_tokens:read"],
        "PUT /{token_id}": ["api_tokens:update"],
        "DELETE /{token_id}": ["api_tokens:delete"],
        "POST /{token_id}/regenerate": ["api_tokens:regenerate"],
        "GET /{token_id}/usage": ["api_tokens:usage_read"],
    }),
    "analytics": ("/analytics", {
        "GET /dashboard": ["analytics:read"],
        "GET /usage": ["analytics:read"],
        "GET /conversion": ["analytics:read"],
    }),
    "admin": ("/saas", {
        "GET /dashboard": ["saas_analytics:read"],
        "GET /roles": ["saas_roles:read"],
        "POST /roles": ["saas_roles:create"],
        "PUT /roles/{role_id}": ["saas_roles:update"],
        "DELETE /roles/{role_id}": ["saas_roles:delete"],
        "GET /subscriptions": ["saas_subscriptions:read"],
        "POST /subscriptions": ["saas_subscriptions:create"],
        "PUT /subscriptions/{subscription_id}": ["saas_subscriptions:update"],
        "DELETE /subscriptions/{subscription_id}": ["saas_subscriptions:delete"],
        "GET /analytics": ["saas_analytics:read"],
        "GET /analytics/export": ["saas_analytics:export"],
    }),
}


def default_route_table() -> RouteTable:
    return RouteTable.from_mapping(ROUTE_PERMISSIONS)
