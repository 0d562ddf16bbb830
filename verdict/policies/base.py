"""
Policy base classes for Verdict.

A policy holds one target and one authorization context and answers named
rules about them. Rules are declared explicitly with the `@rule` decorator
and collected into a per-class table, so the engine never finds a rule by
guessing method names. Scopes (collection filters) are declared the same
way with `@scope_for`.

Example:
    >>> class PostPolicy(Policy):
    ...     aliases = {"update?": "edit?"}
    ...
    ...     @rule("edit?")
    ...     def edit(self) -> bool:
    ...         return self.user.role == "admin" or self.target.author_id == self.user.user_id
    ...
    ...     @scope_for("data")
    ...     def own_posts(self, posts: list) -> list:
    ...         return [p for p in posts if p.author_id == self.user.user_id]
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from verdict.context import AuthorizationContext
from verdict.exceptions import (
    ConfigurationError,
    ScopeNotDefined,
    UnknownRuleError,
    UnresolvableContextKey,
)

if TYPE_CHECKING:
    from verdict.evaluator import EvaluationScope

logger = logging.getLogger(__name__)

# Type variable for the target being authorized
T = TypeVar("T")

_SELF = object()


@dataclass(frozen=True)
class RuleSpec:
    """A declared rule: its public name and the method implementing it."""

    name: str
    attr: str
    skip_pre_checks: bool = False
    message: str | None = None


@dataclass(frozen=True)
class ScopeSpec:
    """A declared scope handler."""

    scope_type: str
    name: str
    attr: str


def rule(
    name: str | Callable[..., bool] | None = None,
    *,
    skip_pre_checks: bool = False,
    message: str | None = None,
) -> Any:
    """
    Declare a policy method as a rule.

    Can be used bare (`@rule`, the rule is named after the method) or with
    an explicit name (`@rule("edit?")`).

    Args:
        name: Public rule name. Defaults to the method name.
        skip_pre_checks: Run the rule body even if pre-checks would halt.
        message: Custom failure message for this rule.
    """
    def decorator(func: Callable[..., bool]) -> Callable[..., bool]:
        rule_name = name if isinstance(name, str) else func.__name__
        func.__verdict_rule__ = RuleSpec(  # type: ignore[attr-defined]
            name=rule_name,
            attr=func.__name__,
            skip_pre_checks=skip_pre_checks,
            message=message,
        )
        return func

    if callable(name):
        return decorator(name)
    return decorator


def scope_for(scope_type: str = "data", name: str = "default") -> Any:
    """
    Declare a policy method as a scope handler.

    The method receives the collection and returns the scoped collection.

    Args:
        scope_type: The kind of collection handled ("data", "relation", ...).
        name: Scope name, for policies with several scopes of one type.
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func.__verdict_scope__ = (scope_type, name)  # type: ignore[attr-defined]
        return func
    return decorator


class _Halt(Exception):
    """Raised by allow()/deny() to stop a pre-check or rule with a decision."""

    def __init__(self, value: bool) -> None:
        self.value = value
        super().__init__(value)


class Policy(Generic[T]):
    """
    Base class for all Verdict policies.

    Attributes:
        target: The object being authorized (an instance, a class for
            class-level checks, or any other value).
        context: The authorization context the check runs under.

    Class attributes:
        identifier: Name used in reasons and details. Derived from the
            class name by default (`BlogPostPolicy` -> "blog_post").
        context_keys: Required context keys, readable as attributes
            (`self.user`). Missing keys fail at construction.
        optional_context: Context keys readable as attributes that may be
            absent (they read as None).
        aliases: Rule name -> rule name it delegates to.
        default_rule: Rule used when a requested rule is not declared.
        pre_checks: Method names run before every rule; they may call
            `self.allow()` or `self.deny()` to decide early.
        messages: Rule name -> custom failure message.
    """

    identifier: ClassVar[str | None] = None
    context_keys: ClassVar[tuple[str, ...]] = ("user",)
    optional_context: ClassVar[tuple[str, ...]] = ()
    aliases: ClassVar[Mapping[str, str]] = {}
    default_rule: ClassVar[str | None] = None
    pre_checks: ClassVar[tuple[str, ...]] = ()
    messages: ClassVar[Mapping[str, str]] = {}

    # Built by __init_subclass__
    _rules: ClassVar[dict[str, RuleSpec]] = {}
    _scopes: ClassVar[dict[tuple[str, str], ScopeSpec]] = {}
    _aliases: ClassVar[dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        rules: dict[str, RuleSpec] = {}
        scopes: dict[tuple[str, str], ScopeSpec] = {}
        aliases: dict[str, str] = {}
        # Walk base-first so subclasses override.
        for klass in reversed(cls.__mro__):
            aliases.update(vars(klass).get("aliases", {}))
            for attr, value in vars(klass).items():
                spec = getattr(value, "__verdict_rule__", None)
                if isinstance(spec, RuleSpec):
                    rules[spec.name] = spec
                scope_key = getattr(value, "__verdict_scope__", None)
                if scope_key is not None:
                    scope_type, scope_name = scope_key
                    scopes[scope_key] = ScopeSpec(scope_type, scope_name, attr)
        cls._rules = rules
        cls._scopes = scopes
        cls._aliases = aliases

    def __init__(
        self,
        target: T,
        context: AuthorizationContext | Mapping[str, Any] | None = None,
        evaluation: EvaluationScope | None = None,
    ) -> None:
        """
        Initialize a policy instance.

        Args:
            target: The object being authorized.
            context: Authorization context (a plain mapping is wrapped).
            evaluation: The evaluation scope this policy runs in. Nested
                checks (`allowed_to`) go through it.

        Raises:
            UnresolvableContextKey: If a required context key is missing.
        """
        if not isinstance(context, AuthorizationContext):
            context = AuthorizationContext(context or {})
        self.target = target
        self.context = context
        self._evaluation = evaluation

        for key in self.context_keys:
            if key not in context:
                raise UnresolvableContextKey(key, sorted(context.keys()))

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not found normally.
        cls = type(self)
        context = self.__dict__.get("context")
        if context is not None:
            if name in cls.context_keys:
                return context.resolve(name)
            if name in cls.optional_context:
                return context.get(name)
        raise AttributeError(f"{cls.__name__!r} object has no attribute {name!r}")

    # Rule lookup

    @classmethod
    def get_identifier(cls) -> str:
        """
        Get the identifier used for this policy in reasons.

        Example:
            >>> class BlogPostPolicy(Policy):
            ...     pass
            >>> BlogPostPolicy.get_identifier()
            'blog_post'
        """
        if cls.identifier:
            return cls.identifier

        name = cls.__name__
        if name.endswith("Policy"):
            name = name[:-6]
        return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()

    @classmethod
    def get_available_rules(cls) -> list[str]:
        """Declared rule names plus aliases, sorted."""
        return sorted({*cls._rules, *cls._aliases})

    @classmethod
    def has_rule(cls, name: str) -> bool:
        try:
            cls.resolve_rule(name)
        except UnknownRuleError:
            return False
        return True

    @classmethod
    def resolve_rule(cls, name: str) -> str:
        """
        Resolve a requested rule name to a declared rule.

        Aliases are followed first, then the policy's default rule is used.

        Raises:
            UnknownRuleError: If nothing matches.
            ConfigurationError: If aliases form a loop.
        """
        seen: list[str] = []
        current = name
        while current not in cls._rules:
            if current in seen:
                raise ConfigurationError(
                    config_key=f"{cls.__name__}.aliases",
                    expected="acyclic rule aliases",
                    received=" -> ".join([*seen, current]),
                )
            seen.append(current)
            if current in cls._aliases:
                current = cls._aliases[current]
                continue
            if cls.default_rule and cls.default_rule in cls._rules:
                logger.debug(
                    f"{cls.__name__}: rule '{name}' not declared, "
                    f"using default rule '{cls.default_rule}'"
                )
                return cls.default_rule
            raise UnknownRuleError(cls.__name__, name, cls.get_available_rules())
        return current

    @classmethod
    def message_for(cls, name: str) -> str | None:
        if name in cls.messages:
            return cls.messages[name]
        spec = cls._rules.get(name)
        return spec.message if spec else None

    # Evaluation

    def apply(self, rule_name: str) -> bool:
        """
        Evaluate a rule against this policy's target.

        Pre-checks run first unless the rule opts out; the first pre-check
        that calls `allow()` or `deny()` decides. A rule body may call them
        too.
        """
        resolved = self.resolve_rule(rule_name)
        spec = self._rules[resolved]

        if not spec.skip_pre_checks:
            for check_name in self.pre_checks:
                try:
                    getattr(self, check_name)()
                except _Halt as halt:
                    logger.debug(
                        f"{type(self).__name__}: pre-check '{check_name}' "
                        f"decided '{rule_name}' -> {halt.value}"
                    )
                    return halt.value

        try:
            return bool(getattr(self, spec.attr)())
        except _Halt as halt:
            return halt.value

    def evaluate(self, rule_name: str) -> bool:
        """Alias for apply()."""
        return self.apply(rule_name)

    def allow(self) -> None:
        """Stop the current pre-check or rule body and grant access."""
        raise _Halt(True)

    def deny(self) -> None:
        """Stop the current pre-check or rule body and deny access."""
        raise _Halt(False)

    # Composition

    @property
    def evaluation(self) -> EvaluationScope:
        """The evaluation scope, creating a private one on first use."""
        if self._evaluation is None:
            from verdict.evaluator import EvaluationScope

            self._evaluation = EvaluationScope(context=self.context)
        return self._evaluation

    def allowed_to(
        self,
        rule_name: str,
        target: Any = _SELF,
        *,
        policy: type[Policy] | None = None,
        namespace: str | None = None,
    ) -> bool:
        """
        Check another rule, possibly on another target.

        The check goes through the evaluator, so it is memoized, guarded
        against recursion, and its failure is recorded under the rule
        currently running.

        Example:
            >>> @rule("destroy?")
            ... def destroy(self) -> bool:
            ...     return self.allowed_to("manage?", self.target.blog)
        """
        if target is _SELF:
            target = self.target
            if policy is None:
                policy = type(self)
        scope = self.evaluation
        result = scope.evaluator.apply(
            scope,
            target,
            rule_name,
            policy=policy,
            namespace=namespace,
            context=self.context,
        )
        return result.value

    def check(self, rule_name: str) -> bool:
        """Check another rule of this policy on the same target."""
        return self.allowed_to(rule_name)

    # Scoping

    @classmethod
    def scope_types(cls) -> list[str]:
        return sorted({scope_type for scope_type, _ in cls._scopes})

    @classmethod
    def has_scope(cls, scope_type: str, name: str = "default") -> bool:
        return (scope_type, name) in cls._scopes

    def scope(
        self,
        collection: Any,
        scope_type: str = "data",
        name: str = "default",
    ) -> Any:
        """
        Apply a declared scope to a collection.

        Raises:
            ScopeNotDefined: If the policy has no such scope.
        """
        spec = self._scopes.get((scope_type, name))
        if spec is None:
            raise ScopeNotDefined(type(self).__name__, scope_type, name)
        return getattr(self, spec.attr)(collection)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(target={self.target!r})"
