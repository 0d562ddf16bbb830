"""
Testing helpers for applications using Verdict.

Example:
    >>> def test_update_checks_permission(verdict, post, admin):
    ...     with expect_authorized(verdict, "edit?", post):
    ...         update_post(verdict, post, user=admin)
    ...
    >>> assert_denied(PostPolicy, "edit?", post, user=guest)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from verdict.evaluator import EvaluationScope, RuleEvaluator
from verdict.policies.base import Policy
from verdict.policies.registry import PolicyRegistry
from verdict.types import AuthorizationResult


@dataclass(frozen=True)
class RecordedCheck:
    """One rule evaluation seen by an AuthorizationRecorder."""

    target: Any
    rule: str
    policy_class: str
    value: bool
    nested: bool = False

    def matches(self, rule: str, target: Any, policy: type[Policy] | None = None) -> bool:
        if self.rule != rule:
            return False
        if policy is not None and self.policy_class != policy.__name__:
            return False
        return self.target is target or self.target == target

    def describe(self) -> str:
        outcome = "allowed" if self.value else "denied"
        return f"{self.policy_class}.{self.rule} on {self.target!r} ({outcome})"


class AuthorizationRecorder:
    """
    Records every rule an evaluator applies while active.

    Works on a `Verdict` or a bare `RuleEvaluator`. Nested checks (rules
    calling `allowed_to`) are recorded with `nested=True`.
    """

    def __init__(self, engine: Any) -> None:
        self.evaluator: RuleEvaluator = getattr(engine, "evaluator", engine)
        self.calls: list[RecordedCheck] = []

    def __enter__(self) -> AuthorizationRecorder:
        self.evaluator.add_observer(self.record)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.evaluator.remove_observer(self.record)

    def record(
        self,
        scope: EvaluationScope,
        target: Any,
        result: AuthorizationResult,
        nested: bool,
    ) -> None:
        self.calls.append(
            RecordedCheck(target, result.rule, result.policy_class, result.value, nested)
        )

    def top_level(self) -> list[RecordedCheck]:
        return [call for call in self.calls if not call.nested]

    def was_authorized(
        self, rule: str, target: Any, policy: type[Policy] | None = None
    ) -> bool:
        return any(call.matches(rule, target, policy) for call in self.top_level())


@contextmanager
def expect_authorized(
    engine: Any,
    rule: str,
    target: Any,
    *,
    policy: type[Policy] | None = None,
) -> Iterator[AuthorizationRecorder]:
    """
    Assert that the block authorizes `rule` on `target`.

    Only top-level checks count; a rule evaluated because another rule
    called it does not satisfy the expectation.

    Raises:
        AssertionError: If no matching check was performed.
    """
    with AuthorizationRecorder(engine) as recorder:
        yield recorder

    if not recorder.was_authorized(rule, target, policy):
        performed = [call.describe() for call in recorder.top_level()]
        expected = f"{policy.__name__}.{rule}" if policy else rule
        raise AssertionError(
            f"Expected {expected} to be authorized on {target!r}, "
            f"performed: {performed or 'nothing'}"
        )


def _check(
    policy_class: type[Policy],
    rule: str,
    target: Any,
    registry: PolicyRegistry | None,
    context: dict[str, Any],
) -> AuthorizationResult:
    evaluator = RuleEvaluator(registry or PolicyRegistry())
    with EvaluationScope(context, evaluator=evaluator) as scope:
        return evaluator.apply(scope, target, rule, policy=policy_class)


def assert_allowed(
    policy_class: type[Policy],
    rule: str,
    target: Any,
    *,
    registry: PolicyRegistry | None = None,
    **context: Any,
) -> AuthorizationResult:
    """
    Assert that a policy allows a rule, in a fresh evaluation scope.

    Args:
        registry: Registry for nested checks on other targets.
        **context: Context values (e.g. `user=admin`).
    """
    result = _check(policy_class, rule, target, registry, context)
    if not result.value:
        raise AssertionError(
            f"Expected {policy_class.__name__}.{rule} to allow {target!r}, "
            f"denied with {result.details}"
        )
    return result


def assert_denied(
    policy_class: type[Policy],
    rule: str,
    target: Any,
    *,
    registry: PolicyRegistry | None = None,
    **context: Any,
) -> AuthorizationResult:
    """Assert that a policy denies a rule; returns the result for inspection."""
    result = _check(policy_class, rule, target, registry, context)
    if result.value:
        raise AssertionError(
            f"Expected {policy_class.__name__}.{rule} to deny {target!r}"
        )
    return result
