from __future__ import annotations

from storefront.service.policy import PUBLIC, RoleRequirement, requires
from storefront.storage.models import Role

# (method, route path template) -> requirement; unlisted routes need a valid token
ROUTE_POLICY: dict[tuple[str, str], RoleRequirement] = {
    ("GET", "/healthz"): PUBLIC,
    ("POST", "/auth/register"): PUBLIC,
    ("POST", "/auth/login"): PUBLIC,
    ("POST", "/auth/refresh"): PUBLIC,
    ("POST", "/auth/logout"): PUBLIC,
    ("GET", "/auth/{provider}"): PUBLIC,
    ("GET", "/auth/{provider}/callback"): PUBLIC,
    ("*", "/dashboard/*"): requires(Role.ADMIN),
}
