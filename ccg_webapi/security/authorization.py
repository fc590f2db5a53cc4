"""Named authorization policies and the ``authorize`` view decorator."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from flask import current_app, g, request

from ..utils.responses import error_response
from .authentication import BEARER_SCHEME, Principal

__all__ = [
    "ADMINISTRATOR_POLICY",
    "AuthorizationPolicy",
    "PolicyRegistry",
    "UnknownPolicyError",
    "authorize",
    "configure_authorization",
]

ADMINISTRATOR_POLICY = "RequireAdministratorRole"


class UnknownPolicyError(LookupError):
    """Raised when a view references a policy that was never registered."""


@dataclass(frozen=True)
class AuthorizationPolicy:
    name: str
    required_roles: tuple[str, ...] = ()
    authentication_schemes: tuple[str, ...] = (BEARER_SCHEME,)

    def is_satisfied_by(self, principal: Principal) -> bool:
        if self.authentication_schemes and principal.scheme not in self.authentication_schemes:
            return False
        if not self.required_roles:
            return True
        return any(principal.is_in_role(role) for role in self.required_roles)


class PolicyRegistry:
    """Thread-safe store of named policies."""

    def __init__(self) -> None:
        self._policies: Dict[str, AuthorizationPolicy] = {}
        self._lock = threading.Lock()

    def add_policy(
        self,
        name: str,
        *,
        roles: Iterable[str] = (),
        schemes: Iterable[str] = (BEARER_SCHEME,),
    ) -> AuthorizationPolicy:
        policy = AuthorizationPolicy(
            name=name,
            required_roles=tuple(roles),
            authentication_schemes=tuple(schemes),
        )
        with self._lock:
            self._policies[name] = policy
        return policy

    def get(self, name: str) -> AuthorizationPolicy:
        with self._lock:
            policy = self._policies.get(name)
        if policy is None:
            raise UnknownPolicyError(f"Authorization policy {name!r} is not registered")
        return policy

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._policies

    def __iter__(self):
        with self._lock:
            return iter(list(self._policies.values()))


def _challenge():
    error = getattr(g, "authentication_error", None)
    challenge = BEARER_SCHEME
    if error:
        description = str(error).replace('"', "'")
        challenge = f'{BEARER_SCHEME} error="invalid_token", error_description="{description}"'
    return error_response(401, "Unauthorized", headers={"WWW-Authenticate": challenge})


def authorize(policy: Optional[str] = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Require an authenticated principal, optionally satisfying ``policy``."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if request.method == "OPTIONS":
                return current_app.make_default_options_response()

            principal: Optional[Principal] = getattr(g, "principal", None)
            if principal is None:
                return _challenge()

            if policy is not None:
                registry: PolicyRegistry = current_app.extensions["authorization_policies"]
                if not registry.get(policy).is_satisfied_by(principal):
                    current_app.logger.info(
                        "Authorization policy denied request",
                        extra={"policy": policy, "user_id": principal.name, "path": request.path},
                    )
                    return error_response(403, "Forbidden")
            return fn(*args, **kwargs)

        wrapper.requires_auth = True  # type: ignore[attr-defined]
        wrapper.authorization_policy = policy  # type: ignore[attr-defined]
        return wrapper

    return decorator


def configure_authorization(app) -> PolicyRegistry:
    """Register the policies the host exposes."""

    registry = PolicyRegistry()
    registry.add_policy(ADMINISTRATOR_POLICY, roles=("Admin",))
    app.extensions["authorization_policies"] = registry
    return registry
