from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional, Tuple

from storefront.storage.models import Role


@dataclass(frozen=True)
class RoleRequirement:
    """What a route demands of the caller.

    ``public`` routes skip authentication entirely. Otherwise a valid access
    token is needed and, when ``roles`` is set, its role must be one of them.
    """

    public: bool = False
    roles: Optional[FrozenSet[Role]] = None

    def allows(self, role: Role) -> bool:
        return self.roles is None or Role(role) in self.roles


PUBLIC = RoleRequirement(public=True)
AUTHENTICATED = RoleRequirement()


def requires(*roles: Role) -> RoleRequirement:
    return RoleRequirement(roles=frozenset(Role(r) for r in roles))


PolicyKey = Tuple[str, str]


class RolePolicy:
    """Static ``(method, path template) -> RoleRequirement`` table.

    Exact entries are consulted first. Prefix entries, written as a path
    ending in ``/*``, are then tried longest first. ``*`` as the method
    matches any method. Anything unlisted requires authentication only.
    """

    def __init__(self, entries: Mapping[PolicyKey, RoleRequirement]) -> None:
        self._exact: dict[PolicyKey, RoleRequirement] = {}
        prefixes: list[Tuple[str, str, RoleRequirement]] = []
        for (method, path), requirement in entries.items():
            method = method.upper()
            if path.endswith("/*"):
                prefixes.append((method, path[:-1], requirement))
            else:
                self._exact[(method, path)] = requirement
        self._prefixes = sorted(prefixes, key=lambda item: len(item[1]), reverse=True)

    def lookup(self, method: str, path: str) -> RoleRequirement:
        method = method.upper()
        for key in ((method, path), ("*", path)):
            if key in self._exact:
                return self._exact[key]
        for entry_method, prefix, requirement in self._prefixes:
            if entry_method not in (method, "*"):
                continue
            if path.startswith(prefix) or path == prefix.rstrip("/"):
                return requirement
        return AUTHENTICATED


__all__ = ["RoleRequirement", "PUBLIC", "AUTHENTICATED", "requires", "RolePolicy"]
