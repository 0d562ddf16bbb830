"""
Rule evaluation for Verdict.

`RuleEvaluator` resolves a policy for a target, runs a rule, records why it
failed and memoizes the result. All per-request state lives in an
`EvaluationScope` that is passed explicitly to every call: one context, one
reason collector, one result cache. Two scopes never share mutable state,
so independent requests can be evaluated on different threads or tasks.

Example:
    >>> evaluator = RuleEvaluator(registry)
    >>> with EvaluationScope({"user": user}, evaluator=evaluator) as scope:
    ...     result = evaluator.authorize(scope, post, "edit?", raise_on_deny=False)
    ...     result.value
    False
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from verdict.config import VerdictConfig, get_config
from verdict.context import AuthorizationContext
from verdict.exceptions import NotAuthorizedError, RecursiveEvaluationError
from verdict.observability.hooks import (
    METRIC_AUTHORIZE_ALLOWED,
    METRIC_AUTHORIZE_CACHE_HITS,
    METRIC_AUTHORIZE_DENIED,
    METRIC_AUTHORIZE_LATENCY,
    METRIC_AUTHORIZE_REQUESTS,
    emit_counter,
    emit_timing,
)
from verdict.policies.base import Policy
from verdict.policies.registry import PolicyRegistry, get_global_registry
from verdict.reasons import ReasonCollector
from verdict.types import AuthorizationResult, MemoizationKey, PolicyBinding

logger = logging.getLogger(__name__)

ContextArg = AuthorizationContext | Mapping[str, Any] | None


class EvaluationScope:
    """
    Per-request evaluation state.

    Owns exactly one AuthorizationContext, one ReasonCollector and one
    memoization cache. Create one per logical request and drop it when the
    request ends; using it as a context manager clears the cache on exit.

    Args:
        context: The authorization context, or a mapping of values.
        evaluator: The evaluator nested checks go through. Defaults to one
            backed by the global registry.
        config: Configuration for this scope. Defaults to the process-wide
            configuration at the time the scope is opened.
    """

    def __init__(
        self,
        context: ContextArg = None,
        *,
        evaluator: RuleEvaluator | None = None,
        config: VerdictConfig | None = None,
    ) -> None:
        if not isinstance(context, AuthorizationContext):
            context = AuthorizationContext(context or {})
        self.context = context
        self.config = config or get_config()
        self.evaluator = evaluator or RuleEvaluator()
        self.reasons = ReasonCollector()
        # Entries keep the target and context alive so their ids cannot be reused.
        self._cache: dict[MemoizationKey, tuple[AuthorizationResult, PolicyBinding]] = {}
        self._in_flight: list[MemoizationKey] = []

    def __enter__(self) -> EvaluationScope:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.clear()

    # Context

    def context_for(self, context: ContextArg = None) -> AuthorizationContext:
        """
        The context a single check runs under.

        A full AuthorizationContext is used as is; a plain mapping overrides
        some values of the scope's context.
        """
        if context is None:
            return self.context
        if isinstance(context, AuthorizationContext):
            return context
        return self.context.merged(context)

    # Memoization

    def cached(self, key: MemoizationKey) -> AuthorizationResult | None:
        entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    def store(
        self, key: MemoizationKey, result: AuthorizationResult, binding: PolicyBinding
    ) -> None:
        self._cache[key] = (result, binding)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        """Drop cached results and reasons."""
        self._cache.clear()
        self.reasons.clear()

    # Recursion guard

    def _enter(self, key: MemoizationKey) -> None:
        if key in self._in_flight:
            start = self._in_flight.index(key)
            chain = [k.describe() for k in self._in_flight[start:]] + [key.describe()]
            raise RecursiveEvaluationError(chain)
        self._in_flight.append(key)

    def _exit(self, key: MemoizationKey) -> None:
        popped = self._in_flight.pop()
        if popped != key:
            raise RuntimeError(f"Evaluation stack corrupted at {key.describe()}")

    # Shortcuts

    def authorize(self, target: Any, rule: str | None = None, **options: Any) -> AuthorizationResult:
        return self.evaluator.authorize(self, target, rule, **options)

    def allowed_to(self, rule: str | None, target: Any, **options: Any) -> bool:
        return self.evaluator.allowed_to(self, rule, target, **options)


CheckObserver = Callable[[EvaluationScope, Any, AuthorizationResult, bool], None]


class RuleEvaluator:
    """
    Resolves policies, applies rules and builds AuthorizationResults.

    The evaluator holds only its registry and observers; every call
    takes the EvaluationScope to work in.

    Args:
        registry: Registry used to resolve policies. Defaults to the global
            registry.
    """

    def __init__(self, registry: PolicyRegistry | None = None) -> None:
        self.registry = registry or get_global_registry()
        self._observers: list[CheckObserver] = []

    # Observers

    def add_observer(self, observer: CheckObserver) -> None:
        """
        Register a callable notified after every applied rule.

        The observer receives `(scope, target, result, nested)`, where
        `nested` is True when the check ran inside another rule. Cache hits
        are reported like fresh evaluations.
        """
        self._observers.append(observer)

    def remove_observer(self, observer: CheckObserver) -> None:
        """Unregister an observer added with add_observer()."""
        self._observers.remove(observer)

    def _notify(self, scope: EvaluationScope, target: Any, result: AuthorizationResult) -> None:
        nested = bool(scope._in_flight)
        for observer in list(self._observers):
            observer(scope, target, result, nested)

    def apply(
        self,
        scope: EvaluationScope,
        target: Any,
        rule: str | None = None,
        *,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
        context: ContextArg = None,
    ) -> AuthorizationResult:
        """
        Evaluate a rule and return the result without raising on denial.

        Args:
            scope: The evaluation scope.
            target: The object being authorized.
            rule: Rule name; defaults to the scope config's default_rule.
            namespace: Namespace to prefer when resolving the policy.
            policy: Explicit policy class.
            context: Context overrides for this check.

        Raises:
            PolicyNotFound: If no policy can be resolved.
            UnknownRuleError: If the policy has no such rule.
            RecursiveEvaluationError: If the rule re-enters itself.
        """
        rule = rule or scope.config.default_rule
        binding = PolicyBinding(target, scope.context_for(context), namespace)
        policy_class = self.registry.lookup(binding.target, binding.namespace, policy)
        key = MemoizationKey.build(binding.target, rule, binding.context, policy_class)
        identifier = policy_class.get_identifier()
        tags = {"policy": identifier, "rule": rule}

        emit_counter(METRIC_AUTHORIZE_REQUESTS, tags=tags)

        cached = scope.cached(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key.describe()} -> {cached.value}")
            emit_counter(METRIC_AUTHORIZE_CACHE_HITS, tags=tags)
            # A cached failure still counts as a nested failure of the caller.
            if not cached.value and scope.reasons.current_frame() is not None:
                scope.reasons.merge(cached.reasons)
            self._notify(scope, binding.target, cached)
            return cached

        started = time.perf_counter()
        scope._enter(key)
        try:
            instance = policy_class(binding.target, binding.context, scope)
            with scope.reasons.frame(identifier, rule, policy_class.message_for(rule)) as frame:
                value = instance.apply(rule)
                frame.failed = not value
        finally:
            scope._exit(key)

        if value:
            result = AuthorizationResult.allow(rule, identifier, policy_class.__name__)
            emit_counter(METRIC_AUTHORIZE_ALLOWED, tags=tags)
        else:
            result = AuthorizationResult.deny(
                rule, identifier, policy_class.__name__, reasons=frame.reason
            )
            emit_counter(METRIC_AUTHORIZE_DENIED, tags=tags)

        emit_timing(METRIC_AUTHORIZE_LATENCY, (time.perf_counter() - started) * 1000, tags=tags)
        logger.debug(
            f"{policy_class.__name__}.{rule} -> {'allowed' if value else 'denied'}"
        )

        scope.store(key, result, binding)
        self._notify(scope, binding.target, result)
        return result

    def authorize(
        self,
        scope: EvaluationScope,
        target: Any,
        rule: str | None = None,
        *,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
        context: ContextArg = None,
        raise_on_deny: bool | None = None,
    ) -> AuthorizationResult:
        """
        Evaluate a rule, raising on denial in raising mode.

        Raising mode is the `raise_on_deny` argument, or the scope config's
        `raise_on_deny` when the argument is None.

        Raises:
            NotAuthorizedError: If denied in raising mode.
        """
        result = self.apply(
            scope,
            target,
            rule,
            namespace=namespace,
            policy=policy,
            context=context,
        )
        if raise_on_deny is None:
            raise_on_deny = scope.config.raise_on_deny
        if not result.value and raise_on_deny:
            raise NotAuthorizedError(result)
        return result

    def allowed_to(
        self,
        scope: EvaluationScope,
        rule: str | None,
        target: Any,
        *,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
        context: ContextArg = None,
    ) -> bool:
        """Evaluate a rule and return only its boolean value."""
        return self.apply(
            scope,
            target,
            rule,
            namespace=namespace,
            policy=policy,
            context=context,
        ).value
