"""Tests for the route policy table and the authorization guard."""

from datetime import timedelta

import pytest

from storefront.api.access import ROUTE_POLICY
from storefront.service.errors import AuthenticationError, ForbiddenError
from storefront.service.guard import AuthorizationGuard, extract_bearer
from storefront.service.policy import AUTHENTICATED, PUBLIC, RolePolicy, requires
from storefront.service.tokens import TokenIssuer
from storefront.storage.models import Role


@pytest.fixture
def issuer():
    return TokenIssuer(
        "Test-Secret-Key_for-Automation-Only-987654321!",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture
def guard(issuer):
    return AuthorizationGuard(RolePolicy(ROUTE_POLICY), issuer)


def _bearer(issuer, role):
    return f"Bearer {issuer.issue('user-1', role).access_token}"


class TestRolePolicy:
    def test_exact_entry(self):
        policy = RolePolicy({("POST", "/auth/login"): PUBLIC})
        assert policy.lookup("post", "/auth/login") is PUBLIC

    def test_unlisted_route_requires_authentication_only(self):
        requirement = RolePolicy({}).lookup("GET", "/users/profile")
        assert requirement is AUTHENTICATED
        assert not requirement.public
        assert requirement.allows(Role.USER)

    def test_exact_beats_prefix(self):
        policy = RolePolicy(
            {
                ("*", "/dashboard/*"): requires(Role.ADMIN),
                ("GET", "/dashboard/stats"): requires(Role.ADMIN, Role.EMPLOYEES),
            }
        )
        assert policy.lookup("GET", "/dashboard/stats").allows(Role.EMPLOYEES)
        assert not policy.lookup("GET", "/dashboard/settings/users").allows(Role.EMPLOYEES)

    def test_longest_prefix_wins(self):
        policy = RolePolicy(
            {
                ("GET", "/dashboard/*"): requires(Role.ADMIN),
                ("GET", "/dashboard/reports/*"): requires(Role.EMPLOYEES),
            }
        )
        assert policy.lookup("GET", "/dashboard/reports/daily").allows(Role.EMPLOYEES)
        assert not policy.lookup("GET", "/dashboard/users").allows(Role.EMPLOYEES)

    def test_prefix_method_must_match(self):
        policy = RolePolicy({("GET", "/dashboard/*"): requires(Role.ADMIN)})
        assert policy.lookup("PATCH", "/dashboard/users") is AUTHENTICATED

    def test_role_check_is_membership_not_hierarchy(self):
        employees_only = requires(Role.EMPLOYEES)
        assert employees_only.allows(Role.EMPLOYEES)
        assert not employees_only.allows(Role.ADMIN)


class TestExtractBearer:
    @pytest.mark.parametrize(
        "header", [None, "", "Basic abc", "Bearer", "Bearer   ", "token-without-scheme"]
    )
    def test_invalid_headers(self, header):
        assert extract_bearer(header) is None

    def test_scheme_is_case_insensitive(self):
        assert extract_bearer("bearer abc.def.ghi") == "abc.def.ghi"


class TestAuthorizationGuard:
    def test_public_route_without_token(self, guard):
        assert guard.authorize("POST", "/auth/login", None) is None

    def test_public_route_ignores_malformed_header(self, guard):
        assert guard.authorize("POST", "/auth/register", "Bearer not-a-token") is None

    def test_protected_route_requires_token(self, guard):
        with pytest.raises(AuthenticationError):
            guard.authorize("GET", "/users/profile", None)

    def test_protected_route_rejects_invalid_token(self, guard):
        with pytest.raises(AuthenticationError):
            guard.authorize("GET", "/users/profile", "Bearer garbage")

    def test_refresh_token_is_not_an_access_token(self, guard, issuer):
        refresh = issuer.issue("user-1", Role.ADMIN).refresh_token
        with pytest.raises(AuthenticationError):
            guard.authorize("GET", "/users/profile", f"Bearer {refresh}")

    def test_authenticated_route_returns_context(self, guard, issuer):
        context = guard.authorize("GET", "/users/profile", _bearer(issuer, Role.USER))
        assert context.user_id == "user-1"
        assert context.role == Role.USER

    def test_admin_route_forbids_user(self, guard, issuer):
        with pytest.raises(ForbiddenError):
            guard.authorize(
                "GET", "/dashboard/settings/users", _bearer(issuer, Role.USER)
            )

    def test_admin_route_forbids_employees(self, guard, issuer):
        with pytest.raises(ForbiddenError):
            guard.authorize(
                "PATCH", "/dashboard/settings/users/{user_id}", _bearer(issuer, Role.EMPLOYEES)
            )

    def test_admin_route_allows_admin(self, guard, issuer):
        context = guard.authorize(
            "GET", "/dashboard/settings/users", _bearer(issuer, Role.ADMIN)
        )
        assert context.role == Role.ADMIN
