"""
Built-in policies for Verdict.

This module provides commonly used policy implementations that can be
used directly or extended for custom authorization logic.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, ClassVar

from verdict.policies.base import Policy, scope_for

logger = logging.getLogger(__name__)


def _empty_like(collection: Any) -> Any:
    try:
        return type(collection)()
    except TypeError:
        return []


class DenyAllPolicy(Policy[Any]):
    """
    Policy that denies every rule and scopes every collection to nothing.

    Useful as an explicit fallback registration for targets that must never
    be reachable:

        >>> registry.register(InternalAuditLog, DenyAllPolicy)
    """

    context_keys = ()

    @classmethod
    def resolve_rule(cls, name: str) -> str:
        return name

    def apply(self, rule_name: str) -> bool:
        logger.debug(f"DenyAllPolicy: denying '{rule_name}'")
        return False

    @scope_for("data")
    def nothing(self, collection: Any) -> Any:
        return _empty_like(collection)


class AllowAllPolicy(Policy[Any]):
    """
    Policy that allows every rule.

    WARNING: This policy should ONLY be used for testing or in development
    environments. A warning is logged every time it is instantiated.
    """

    context_keys = ()

    def __init__(self, target: Any, context: Any = None, evaluation: Any = None) -> None:
        super().__init__(target, context, evaluation)
        logger.warning(
            f"AllowAllPolicy instantiated for {type(target).__name__}. "
            "This policy allows ALL rules and should NOT be used in production!"
        )

    @classmethod
    def resolve_rule(cls, name: str) -> str:
        return name

    def apply(self, rule_name: str) -> bool:
        return True

    @scope_for("data")
    def everything(self, collection: Any) -> Any:
        return collection


class RoleBasedPolicy(Policy[Any]):
    """
    Base class for role-based policies.

    Grants a rule when the `user` context value has one of the roles listed
    for it. The user may expose `roles` (a list) or `role` (a string).

    Attributes:
        allowed_roles: Rule name -> roles allowed to pass it.
        default_allowed: Whether rules missing from allowed_roles pass.

    Example:
        >>> class DocumentPolicy(RoleBasedPolicy):
        ...     allowed_roles = {
        ...         "show?": ["viewer", "editor", "admin"],
        ...         "edit?": ["editor", "admin"],
        ...         "destroy?": ["admin"],
        ...     }
    """

    allowed_roles: ClassVar[Mapping[str, list[str]]] = {}
    default_allowed: ClassVar[bool] = False

    @classmethod
    def resolve_rule(cls, name: str) -> str:
        if name in cls._rules or name in cls._aliases:
            return super().resolve_rule(name)
        return name

    @classmethod
    def get_available_rules(cls) -> list[str]:
        return sorted({*super().get_available_rules(), *cls.allowed_roles})

    def user_roles(self) -> set[str]:
        roles = getattr(self.user, "roles", None)
        if roles is None:
            role = getattr(self.user, "role", None)
            roles = [role] if role else []
        return set(roles)

    def apply(self, rule_name: str) -> bool:
        if rule_name in self._rules or rule_name in self._aliases:
            return super().apply(rule_name)

        if rule_name not in self.allowed_roles:
            logger.debug(
                f"RoleBasedPolicy: rule '{rule_name}' not in allowed_roles, "
                f"{'allowing' if self.default_allowed else 'denying'} by default"
            )
            return self.default_allowed

        required = set(self.allowed_roles[rule_name])
        matching = self.user_roles() & required
        if matching:
            logger.debug(f"RoleBasedPolicy: role(s) {matching} grant '{rule_name}'")
        else:
            logger.debug(
                f"RoleBasedPolicy: user lacks required role(s) {sorted(required)} "
                f"for '{rule_name}'"
            )
        return bool(matching)

    @classmethod
    def with_roles(
        cls,
        roles: dict[str, list[str]],
        default_allowed: bool = False,
    ) -> type[RoleBasedPolicy]:
        """
        Create a RoleBasedPolicy subclass with specific roles.

        Example:
            >>> ApiPolicy = RoleBasedPolicy.with_roles({"show?": ["user", "admin"]})
        """
        class DynamicRolePolicy(cls):  # type: ignore[valid-type, misc]
            pass

        DynamicRolePolicy.allowed_roles = roles
        DynamicRolePolicy.default_allowed = default_allowed
        return DynamicRolePolicy


class OwnershipPolicy(Policy[Any]):
    """
    Policy that allows rules only when the user owns the target.

    Attributes:
        owner_field: Attribute on the target holding the owner's id.
        user_id_field: Attribute on the user holding its id.
        public_rules: Rules that pass for non-owners too.

    Example:
        >>> class DocumentPolicy(OwnershipPolicy):
        ...     owner_field = "created_by"
        ...     public_rules = ("show?",)
    """

    owner_field: ClassVar[str] = "owner_id"
    user_id_field: ClassVar[str] = "user_id"
    public_rules: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def resolve_rule(cls, name: str) -> str:
        if name in cls._rules or name in cls._aliases:
            return super().resolve_rule(name)
        return name

    def is_owner(self) -> bool:
        """Check if the user owns the target."""
        if self.target is None or isinstance(self.target, type):
            return False
        owner_id = getattr(self.target, self.owner_field, None)
        if owner_id is None:
            return False
        return owner_id == getattr(self.user, self.user_id_field, None)

    def apply(self, rule_name: str) -> bool:
        if rule_name in self._rules or rule_name in self._aliases:
            return super().apply(rule_name)
        if rule_name in self.public_rules:
            return True
        return self.is_owner()

    @scope_for("data")
    def owned(self, collection: Any) -> Any:
        user_id = getattr(self.user, self.user_id_field, None)
        return type(collection)(
            item for item in collection
            if getattr(item, self.owner_field, None) == user_id
        )
