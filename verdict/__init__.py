"""
Verdict: policy-based authorization for Python applications.

Verdict answers "may this actor perform this rule on this target?" by
resolving a policy class for the target, running the rule with a lazily
resolved authorization context, and returning a result that explains
every denial.

Basic Usage:
    >>> from verdict import Policy, Verdict, rule, scope_for
    >>>
    >>> verdict = Verdict()
    >>>
    >>> @verdict.policy(Post)
    ... class PostPolicy(Policy):
    ...     @rule("show?")
    ...     def show(self) -> bool:
    ...         return True
    ...
    ...     @rule("edit?")
    ...     def edit(self) -> bool:
    ...         return self.user.role == "admin"
    ...
    ...     @scope_for("data")
    ...     def own(self, posts):
    ...         return [p for p in posts if p.author_id == self.user.user_id]
    >>>
    >>> with verdict.evaluation(user=current_user) as scope:
    ...     verdict.authorize(post, "edit?", scope=scope)
    ...     visible = verdict.authorized_scope(posts, scope=scope)
"""

__version__ = "0.1.0"

from verdict.config import VerdictConfig, configure, get_config, reset_config
from verdict.context import AuthorizationContext
from verdict.core import Verdict
from verdict.evaluator import EvaluationScope, RuleEvaluator
from verdict.exceptions import (
    ConfigurationError,
    NotAuthorizedError,
    PolicyNotFound,
    RecursiveEvaluationError,
    ScopeNotDefined,
    UnknownRuleError,
    UnresolvableContextKey,
    VerdictError,
)
from verdict.expose import PermissionPayload, ReasonsPayload, expose_permissions, field_name
from verdict.policies import (
    AllowAllPolicy,
    DenyAllPolicy,
    OwnershipPolicy,
    Policy,
    PolicyRegistry,
    RoleBasedPolicy,
    get_global_registry,
    reset_global_registry,
    rule,
    scope_for,
)
from verdict.reasons import Reason, ReasonCollector, details, full_messages
from verdict.scoping import ScopeResolver
from verdict.types import AuthorizationResult, MemoizationKey, PolicyBinding, UserContext

__all__ = [
    # Version
    "__version__",
    # Main class
    "Verdict",
    # Policies
    "Policy",
    "PolicyRegistry",
    "rule",
    "scope_for",
    "get_global_registry",
    "reset_global_registry",
    "DenyAllPolicy",
    "AllowAllPolicy",
    "RoleBasedPolicy",
    "OwnershipPolicy",
    # Evaluation
    "AuthorizationContext",
    "EvaluationScope",
    "RuleEvaluator",
    "ScopeResolver",
    # Types
    "AuthorizationResult",
    "MemoizationKey",
    "PolicyBinding",
    "UserContext",
    "Reason",
    "ReasonCollector",
    "details",
    "full_messages",
    # Binding layer
    "PermissionPayload",
    "ReasonsPayload",
    "expose_permissions",
    "field_name",
    # Configuration
    "VerdictConfig",
    "configure",
    "get_config",
    "reset_config",
    # Exceptions
    "VerdictError",
    "NotAuthorizedError",
    "PolicyNotFound",
    "UnresolvableContextKey",
    "ScopeNotDefined",
    "UnknownRuleError",
    "RecursiveEvaluationError",
    "ConfigurationError",
]
