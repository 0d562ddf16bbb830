"""
Custom exceptions for Verdict.

This module defines the exception hierarchy for the engine. Configuration
defects (a missing policy, a missing context resolver, an undefined scope)
are loud errors that propagate to the caller. `NotAuthorizedError` is the
only exception expected to be caught and turned into an "access denied"
response; it carries the full `AuthorizationResult`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from verdict.types import AuthorizationResult


class VerdictError(Exception):
    """
    Base exception for all Verdict errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     verdict.authorize(post, "edit?", context={"user": user})
        ... except VerdictError as e:
        ...     logger.error(f"Verdict error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class NotAuthorizedError(VerdictError):
    """
    Raised when a rule denies access in raising mode.

    The attached result is the one produced by the evaluator, untouched,
    so the caller can render messages and structured reasons from it.

    Attributes:
        result: The denied AuthorizationResult.

    Example:
        >>> try:
        ...     verdict.authorize(post, "destroy?", scope=scope)
        ... except NotAuthorizedError as e:
        ...     e.result.full_messages
        ['You are not authorized to destroy? this post']
    """

    def __init__(self, result: AuthorizationResult) -> None:
        self.result = result
        self.rule = result.rule
        self.policy = result.policy

        message = f"Not authorized: {result.policy}.{result.rule} denied"
        details = {
            "policy": result.policy,
            "rule": result.rule,
            "reasons": result.details,
        }
        super().__init__(message, details)


class PolicyNotFound(VerdictError):
    """
    Raised when no policy can be resolved for a target.

    This is a configuration defect, not a denial: the caller may catch it
    and default-deny, but the engine never guesses a policy.

    Attributes:
        target_type: Name of the target type that has no policy.
        namespace: The namespace the lookup was made in, if any.
        available_policies: Registered target names (for debugging).
        hint: How to fix the lookup, when known.
    """

    def __init__(
        self,
        target_type: str,
        namespace: str | None = None,
        available_policies: list[str] | None = None,
        hint: str | None = None,
    ) -> None:
        self.target_type = target_type
        self.namespace = namespace
        self.available_policies = available_policies or []
        self.hint = hint

        message = f"No policy found for '{target_type}'"
        if namespace:
            message += f" in namespace '{namespace}'"
        if available_policies:
            message += f". Available policies: {', '.join(available_policies)}"
        if hint:
            message += f" ({hint})"

        details = {
            "target_type": target_type,
            "namespace": namespace,
            "available_policies": self.available_policies,
        }
        super().__init__(message, details)


class UnresolvableContextKey(VerdictError):
    """
    Raised when a context key has neither a value nor a resolver.

    Attributes:
        key: The missing context key.
        known_keys: Keys the context can provide.
    """

    def __init__(self, key: str, known_keys: list[str] | None = None) -> None:
        self.key = key
        self.known_keys = known_keys or []

        message = f"Authorization context has no value or resolver for '{key}'"
        details = {"key": key, "known_keys": self.known_keys}
        super().__init__(message, details)


class ScopeNotDefined(VerdictError):
    """
    Raised when scoping is requested from a policy without a matching scope.

    Returning the unfiltered collection instead would leak data.

    Attributes:
        policy_name: The policy class name.
        scope_type: The scope type that was requested.
        name: The named scope that was requested.
    """

    def __init__(self, policy_name: str, scope_type: str, name: str = "default") -> None:
        self.policy_name = policy_name
        self.scope_type = scope_type
        self.name = name

        message = f"{policy_name} does not define a '{scope_type}' scope"
        if name != "default":
            message += f" named '{name}'"

        details = {
            "policy_name": policy_name,
            "scope_type": scope_type,
            "name": name,
        }
        super().__init__(message, details)


class UnknownRuleError(VerdictError):
    """
    Raised when a policy has no rule (and no default rule) for a name.

    Attributes:
        policy_name: The policy class name.
        rule: The requested rule name.
        available_rules: Rules the policy defines.
    """

    def __init__(
        self,
        policy_name: str,
        rule: str,
        available_rules: list[str] | None = None,
    ) -> None:
        self.policy_name = policy_name
        self.rule = rule
        self.available_rules = available_rules or []

        message = f"{policy_name} has no rule '{rule}'"
        if available_rules:
            message += f". Available rules: {', '.join(available_rules)}"

        details = {
            "policy_name": policy_name,
            "rule": rule,
            "available_rules": self.available_rules,
        }
        super().__init__(message, details)


class RecursiveEvaluationError(VerdictError):
    """
    Raised when a rule re-invokes itself within one evaluation scope.

    Attributes:
        chain: The in-flight checks as "Policy.rule" strings, outermost first,
            ending with the check that closed the cycle.
    """

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain

        message = f"Recursive rule evaluation: {' -> '.join(chain)}"
        details = {"chain": chain}
        super().__init__(message, details)


class ConfigurationError(VerdictError):
    """
    Raised when there is a configuration error in Verdict setup.

    Attributes:
        config_key: The configuration key that has an issue.
        expected: What was expected for this configuration.
        received: What was actually provided.

    Example:
        >>> raise ConfigurationError(
        ...     config_key="default_rule",
        ...     expected="non-empty string",
        ...     received="",
        ... )
    """

    def __init__(
        self,
        config_key: str,
        expected: str | None = None,
        received: Any = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.received = received

        message = f"Configuration error for '{config_key}'"
        if expected:
            message += f": expected {expected}"
        if received is not None:
            message += f", got {received!r}"

        details = {
            "config_key": config_key,
            "expected": expected,
            "received": str(received) if received is not None else None,
        }
        super().__init__(message, details)
