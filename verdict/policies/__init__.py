"""
Policy system for Verdict.

Policies are classes holding one target and one authorization context and
answering named rules about them.

Quick Start:
    >>> from verdict.policies import Policy, PolicyRegistry, rule
    >>>
    >>> registry = PolicyRegistry()
    >>>
    >>> @registry.policy(Post)
    ... class PostPolicy(Policy):
    ...     @rule("show?")
    ...     def show(self) -> bool:
    ...         return True
    ...
    ...     @rule("edit?")
    ...     def edit(self) -> bool:
    ...         return self.user.role == "admin"
"""

from verdict.policies.base import (
    Policy,
    RuleSpec,
    ScopeSpec,
    rule,
    scope_for,
)
from verdict.policies.builtin import (
    AllowAllPolicy,
    DenyAllPolicy,
    OwnershipPolicy,
    RoleBasedPolicy,
)
from verdict.policies.registry import (
    PolicyRegistry,
    get_global_registry,
    reset_global_registry,
)

__all__ = [
    # Base classes
    "Policy",
    "RuleSpec",
    "ScopeSpec",
    "rule",
    "scope_for",
    # Registry
    "PolicyRegistry",
    "get_global_registry",
    "reset_global_registry",
    # Built-in policies
    "DenyAllPolicy",
    "AllowAllPolicy",
    "RoleBasedPolicy",
    "OwnershipPolicy",
]
