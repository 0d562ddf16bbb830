"""
Core Verdict class and entry points.

This module provides the main entry point for the engine, tying together
the policy registry, the rule evaluator, the scope resolver and the
configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from verdict.config import VerdictConfig, get_config
from verdict.context import AuthorizationContext
from verdict.evaluator import ContextArg, EvaluationScope, RuleEvaluator
from verdict.expose import PermissionPayload, expose_permissions
from verdict.policies.base import Policy
from verdict.policies.registry import PolicyRegistry
from verdict.scoping import ScopeResolver
from verdict.types import AuthorizationResult

logger = logging.getLogger(__name__)


class Verdict:
    """
    Main entry point for the Verdict authorization engine.

    Every entry point runs in an EvaluationScope. Pass `scope=` to share
    memoized results and context values across the checks of one request,
    or pass `context=` alone to run a one-off check in a fresh scope.

    Example:
        >>> verdict = Verdict()
        >>>
        >>> @verdict.policy(Post)
        ... class PostPolicy(Policy):
        ...     @rule("edit?")
        ...     def edit(self) -> bool:
        ...         return self.user.role == "admin"
        >>>
        >>> with verdict.evaluation(user=current_user) as scope:
        ...     verdict.authorize(post, "edit?", scope=scope)
        ...     posts = verdict.authorized_scope(all_posts, scope=scope)
    """

    def __init__(
        self,
        registry: PolicyRegistry | None = None,
        config: VerdictConfig | None = None,
        infer_by_name: bool = False,
    ) -> None:
        """
        Initialize Verdict.

        Args:
            registry: Policy registry to use. A new one is created if None.
            config: Fixed configuration. If None, the process-wide
                configuration is read each time a scope is opened.
            infer_by_name: Enable `<TypeName>Policy` inference on the new
                registry (ignored when `registry` is given).
        """
        self._registry = registry or PolicyRegistry(infer_by_name=infer_by_name)
        self._config = config
        self.evaluator = RuleEvaluator(self._registry)
        self.scope_resolver = ScopeResolver(self._registry)

    @property
    def registry(self) -> PolicyRegistry:
        return self._registry

    @property
    def config(self) -> VerdictConfig:
        """The configuration new scopes are opened with."""
        return self._config or get_config()

    # ==================== Registration ====================

    def policy(
        self, target_type: type | str, namespace: str | None = None
    ) -> Callable[[type[Policy]], type[Policy]]:
        """
        Decorator to register a policy for a target type.

        Example:
            >>> @verdict.policy(Post)
            ... class PostPolicy(Policy):
            ...     ...
        """
        return self._registry.policy(target_type, namespace=namespace)

    def register_policy(
        self,
        target_type: type | str,
        policy_class: type[Policy],
        namespace: str | None = None,
    ) -> None:
        """Register a policy class directly."""
        self._registry.register(target_type, policy_class, namespace=namespace)

    def freeze(self) -> None:
        """Mark the end of configuration; registration afterwards raises."""
        self._registry.freeze()

    # ==================== Scopes ====================

    def new_scope(self, context: ContextArg = None, **values: Any) -> EvaluationScope:
        """
        Open an evaluation scope.

        Args:
            context: An AuthorizationContext or a mapping of values.
            **values: Extra context values (e.g. `user=current_user`).
        """
        if not isinstance(context, AuthorizationContext):
            context = AuthorizationContext({**(context or {}), **values})
        elif values:
            context = context.merged(values)
        logger.debug(f"Opening evaluation scope with context keys {list(context)}")
        return EvaluationScope(context, evaluator=self.evaluator, config=self.config)

    @contextmanager
    def evaluation(self, context: ContextArg = None, **values: Any) -> Iterator[EvaluationScope]:
        """
        Context manager opening an evaluation scope for one request.

        Example:
            >>> with verdict.evaluation(user=user) as scope:
            ...     verdict.allowed_to("show?", post, scope=scope)
        """
        scope = self.new_scope(context, **values)
        try:
            yield scope
        finally:
            scope.clear()

    def _resolve_scope(
        self, scope: EvaluationScope | None, context: ContextArg
    ) -> tuple[EvaluationScope, ContextArg]:
        # Without a scope, the context seeds a fresh one instead of
        # overriding anything.
        if scope is None:
            return self.new_scope(context), None
        return scope, context

    # ==================== Authorization Methods ====================

    def authorize(
        self,
        target: Any,
        rule: str | None = None,
        *,
        scope: EvaluationScope | None = None,
        context: ContextArg = None,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
        raise_on_deny: bool | None = None,
    ) -> AuthorizationResult:
        """
        Authorize a rule on a target.

        Args:
            target: The object being authorized.
            rule: Rule name; defaults to the configured default rule.
            scope: Evaluation scope to run in.
            context: Context values (seed a new scope, or override the
                given scope's values for this check).
            namespace: Namespace to prefer when resolving the policy.
            policy: Explicit policy class.
            raise_on_deny: Override the configured raising mode.

        Returns:
            The AuthorizationResult.

        Raises:
            NotAuthorizedError: If denied in raising mode.
            PolicyNotFound: If no policy can be resolved.
        """
        scope, context = self._resolve_scope(scope, context)
        return self.evaluator.authorize(
            scope,
            target,
            rule,
            namespace=namespace,
            policy=policy,
            context=context,
            raise_on_deny=raise_on_deny,
        )

    def allowed_to(
        self,
        rule: str | None,
        target: Any,
        *,
        scope: EvaluationScope | None = None,
        context: ContextArg = None,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
    ) -> bool:
        """
        Check a rule on a target without raising on denial.

        Example:
            >>> if verdict.allowed_to("edit?", post, context={"user": user}):
            ...     render_edit_button()
        """
        scope, context = self._resolve_scope(scope, context)
        return self.evaluator.allowed_to(
            scope,
            rule,
            target,
            namespace=namespace,
            policy=policy,
            context=context,
        )

    def check(
        self,
        target: Any,
        rule: str | None = None,
        *,
        scope: EvaluationScope | None = None,
        context: ContextArg = None,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
    ) -> AuthorizationResult:
        """Evaluate a rule and return the full result without raising."""
        return self.authorize(
            target,
            rule,
            scope=scope,
            context=context,
            namespace=namespace,
            policy=policy,
            raise_on_deny=False,
        )

    def authorized_scope(
        self,
        collection: Any,
        *,
        scope: EvaluationScope | None = None,
        context: ContextArg = None,
        scope_type: str | None = None,
        name: str = "default",
        namespace: str | None = None,
        policy: type[Policy] | None = None,
        target: Any = None,
    ) -> Any:
        """
        Scope a collection with its policy.

        Raises:
            ScopeNotDefined: If the policy has no matching scope.
            PolicyNotFound: If no policy can be resolved.
        """
        scope, context = self._resolve_scope(scope, context)
        return self.scope_resolver.scope(
            scope,
            collection,
            scope_type=scope_type,
            name=name,
            namespace=namespace,
            policy=policy,
            target=target,
            context=context,
        )

    def expose(
        self,
        target: Any,
        rules: Iterable[str] | None = None,
        *,
        scope: EvaluationScope | None = None,
        context: ContextArg = None,
        prefix: str | None = None,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
    ) -> dict[str, PermissionPayload]:
        """
        Build permission fields (`can_edit`, ...) for a target.

        Args:
            rules: Rules to expose; defaults to the configured default rule.
            prefix: Field prefix; defaults to the configured prefix.
        """
        scope, context = self._resolve_scope(scope, context)
        rules = list(rules) if rules is not None else [scope.config.default_rule]
        options: dict[str, Any] = {"namespace": namespace, "policy": policy}
        if context is not None:
            options["context"] = context
        return expose_permissions(scope, target, rules, prefix=prefix, **options)

    def lookup_policy(
        self,
        target: Any,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
    ) -> type[Policy]:
        """Resolve the policy class for a target."""
        return self._registry.lookup(target, namespace, policy)

    def policy_for(
        self,
        target: Any,
        context: Mapping[str, Any] | AuthorizationContext | None = None,
        *,
        namespace: str | None = None,
        scope: EvaluationScope | None = None,
    ) -> Policy:
        """Build a policy instance for a target (useful in tests)."""
        scope, _ = self._resolve_scope(scope, context)
        policy_class = self._registry.lookup(target, namespace)
        return policy_class(target, scope.context, scope)
