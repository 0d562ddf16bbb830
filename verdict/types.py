"""
Core type definitions for Verdict.

This module defines the data structures shared by the evaluator, the
registry and the binding layer: the acting user, the per-check policy
binding, the memoization key, and the authorization result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from verdict.reasons import DEFAULT_FAILURE_MESSAGE, Reason, details, full_messages

if TYPE_CHECKING:
    from verdict.context import AuthorizationContext
    from verdict.policies.base import Policy

_VALUE_TYPES = (str, int, float, bool, bytes, type(None), type)


def identity_key(obj: Any) -> Any:
    """
    Return a cheap identity for memoization.

    Primitives and classes compare by value. Objects may define a
    `policy_cache_key` attribute (or zero-argument method) to opt into
    value identity. Everything else is identified by reference, so the
    cost never depends on the size of the object.
    """
    cache_key = getattr(obj, "policy_cache_key", None)
    if cache_key is not None and not isinstance(obj, type):
        return ("key", cache_key() if callable(cache_key) else cache_key)
    if isinstance(obj, _VALUE_TYPES):
        return ("value", type(obj), obj)
    return ("id", id(obj))


@dataclass(frozen=True)
class UserContext:
    """
    The acting user, as the host application resolved it.

    Verdict does not authenticate anyone; this is a convenient value to put
    under the `user` context key. Any object works as a context value.

    Attributes:
        user_id: Unique identifier for the user.
        roles: Role names assigned to the user.
        attributes: Additional custom attributes for rules.

    Example:
        >>> user = UserContext(user_id="u1", roles=["admin"])
        >>> user.role
        'admin'
    """
    user_id: str
    roles: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str | None:
        """The primary (first) role, if any."""
        return self.roles[0] if self.roles else None

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role."""
        return role in self.roles

    def has_any_role(self, roles: list[str]) -> bool:
        """Check if user has any of the specified roles."""
        return any(role in self.roles for role in roles)

    def get_attribute(self, key: str, default: Any = None) -> Any:
        """Get a user attribute with optional default."""
        return self.attributes.get(key, default)

    @property
    def policy_cache_key(self) -> str:
        return f"user:{self.user_id}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "user_id": self.user_id,
            "roles": self.roles,
            "attributes": self.attributes,
        }


@dataclass(frozen=True)
class PolicyBinding:
    """A target paired with the context it is checked under."""

    target: Any
    context: AuthorizationContext
    namespace: str | None = None

    @property
    def target_type(self) -> type:
        return self.target if isinstance(self.target, type) else type(self.target)


@dataclass(frozen=True)
class MemoizationKey:
    """
    Key of the per-scope result cache.

    Attributes:
        target: Identity of the target (see `identity_key`).
        rule: Requested rule name.
        context: Cache key of the authorization context.
        policy: The policy class that was resolved or passed explicitly.
    """

    target: Any
    rule: str
    context: Any
    policy: type[Policy]

    @classmethod
    def build(
        cls,
        target: Any,
        rule: str,
        context: AuthorizationContext,
        policy: type[Policy],
    ) -> MemoizationKey:
        return cls(
            target=identity_key(target),
            rule=rule,
            context=context.cache_key,
            policy=policy,
        )

    def describe(self) -> str:
        return f"{self.policy.__name__}.{self.rule}"


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Result of evaluating one rule against one target.

    Attributes:
        value: Whether access is granted.
        rule: The rule that was requested.
        policy: Identifier of the policy that answered (e.g. "post").
        policy_class: Name of the policy class.
        reasons: The failure reason tree; None when `value` is True.

    Example:
        >>> result.value
        False
        >>> result.details
        {'post': ['edit?']}
    """
    value: bool
    rule: str
    policy: str
    policy_class: str = ""
    reasons: Reason | None = None

    def __post_init__(self) -> None:
        if self.value and self.reasons is not None:
            raise ValueError("An allowed result cannot carry failure reasons")
        if not self.value and self.reasons is None:
            object.__setattr__(
                self, "reasons", Reason(policy=self.policy, rule=self.rule)
            )

    @classmethod
    def allow(cls, rule: str, policy: str, policy_class: str = "") -> AuthorizationResult:
        """Create an allowed result."""
        return cls(value=True, rule=rule, policy=policy, policy_class=policy_class)

    @classmethod
    def deny(
        cls,
        rule: str,
        policy: str,
        policy_class: str = "",
        reasons: Reason | None = None,
    ) -> AuthorizationResult:
        """Create a denied result."""
        return cls(
            value=False,
            rule=rule,
            policy=policy,
            policy_class=policy_class,
            reasons=reasons,
        )

    @property
    def allowed(self) -> bool:
        return self.value

    @property
    def message(self) -> str | None:
        """Failure message; None when allowed."""
        if self.value:
            return None
        if self.reasons is not None and self.reasons.message:
            return self.reasons.message
        return DEFAULT_FAILURE_MESSAGE

    @property
    def details(self) -> dict[str, list[str]]:
        return details(self.reasons)

    @property
    def full_messages(self) -> list[str]:
        return full_messages(self.reasons)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "value": self.value,
            "rule": self.rule,
            "policy": self.policy,
            "policy_class": self.policy_class,
            "message": self.message,
            "reasons": self.reasons.to_dict() if self.reasons else None,
        }
