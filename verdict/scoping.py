"""
Collection scoping for Verdict.

`ScopeResolver` resolves a policy the same way the evaluator does and hands
the collection to one of the policy's `@scope_for` handlers. A policy
without a matching handler raises `ScopeNotDefined`; the collection is never
returned unfiltered by default.

Example:
    >>> resolver = ScopeResolver(registry)
    >>> visible = resolver.scope(scope, posts, target=Post)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from verdict.evaluator import ContextArg, EvaluationScope
from verdict.exceptions import PolicyNotFound, ScopeNotDefined
from verdict.observability.hooks import METRIC_SCOPE_REQUESTS, emit_counter
from verdict.policies.base import Policy
from verdict.policies.registry import PolicyRegistry, get_global_registry

logger = logging.getLogger(__name__)

ScopeMatcher = Callable[[Any], bool]


def _is_data(collection: Any) -> bool:
    return isinstance(collection, (list, tuple, set, frozenset))


def _is_relation(collection: Any) -> bool:
    return callable(getattr(collection, "filter", None))


class ScopeResolver:
    """
    Applies policy scopes to collections.

    The scope type of a collection is inferred from an ordered list of
    matchers unless given explicitly. Built in: "data" for lists, tuples
    and sets; "relation" for objects with a `filter` method (query
    builders).

    Args:
        registry: Registry used to resolve policies. Defaults to the global
            registry.
    """

    def __init__(self, registry: PolicyRegistry | None = None) -> None:
        self.registry = registry or get_global_registry()
        self._matchers: list[tuple[str, ScopeMatcher]] = [
            ("data", _is_data),
            ("relation", _is_relation),
        ]

    def register_matcher(self, scope_type: str, matcher: ScopeMatcher) -> None:
        """Add a scope type matcher, checked before the existing ones."""
        self._matchers.insert(0, (scope_type, matcher))

    def infer_scope_type(self, collection: Any) -> str:
        for scope_type, matcher in self._matchers:
            if matcher(collection):
                return scope_type
        return "data"

    @staticmethod
    def scope_target(collection: Any) -> Any:
        """
        The object a collection's policy is looked up by.

        A collection declaring `policy_class` stands for itself; one with a
        `model` attribute (a query over a model) stands for the model; a
        non-empty list stands for its first item.
        """
        if getattr(collection, "policy_class", None) is not None:
            return collection
        model = getattr(collection, "model", None)
        if isinstance(model, type):
            return model
        if _is_data(collection) and collection:
            return next(iter(collection))
        return collection

    def scope(
        self,
        evaluation: EvaluationScope,
        collection: Any,
        *,
        scope_type: str | None = None,
        name: str = "default",
        namespace: str | None = None,
        policy: type[Policy] | None = None,
        target: Any = None,
        context: ContextArg = None,
    ) -> Any:
        """
        Scope a collection with the resolved policy.

        Args:
            evaluation: The evaluation scope to run in.
            collection: The collection to scope.
            scope_type: Scope type; inferred from the collection if None.
            name: Named scope to use.
            namespace: Namespace to prefer when resolving the policy.
            policy: Explicit policy class.
            target: Object to resolve the policy by (e.g. a model class).
            context: Context overrides for this call.

        Raises:
            PolicyNotFound: If no policy can be resolved.
            ScopeNotDefined: If the policy has no matching scope.
        """
        lookup_target = target if target is not None else self.scope_target(collection)
        try:
            policy_class = self.registry.lookup(lookup_target, namespace, policy)
        except PolicyNotFound as exc:
            if target is None and _is_data(collection) and not collection:
                raise PolicyNotFound(
                    exc.target_type,
                    exc.namespace,
                    exc.available_policies,
                    hint="an empty collection needs target= to resolve its policy",
                ) from exc
            raise
        scope_type = scope_type or self.infer_scope_type(collection)

        if not policy_class.has_scope(scope_type, name):
            raise ScopeNotDefined(policy_class.__name__, scope_type, name)

        emit_counter(
            METRIC_SCOPE_REQUESTS,
            tags={"policy": policy_class.get_identifier(), "scope_type": scope_type},
        )
        logger.debug(f"Scoping with {policy_class.__name__} ({scope_type}/{name})")

        instance = policy_class(lookup_target, evaluation.context_for(context), evaluation)
        return instance.scope(collection, scope_type, name)
