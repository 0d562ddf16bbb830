"""
Pytest fixtures for Verdict tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from tests.models import Blog, BlogPolicy, Post, PostPolicy
from verdict import (
    EvaluationScope,
    PolicyRegistry,
    RuleEvaluator,
    UserContext,
    Verdict,
    reset_config,
    reset_global_registry,
)
from verdict.observability import InMemoryMetricHook, ObservabilityHooks


# ============================================================================
# Global State
# ============================================================================


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Reset process-wide configuration, registry and hooks around each test."""
    reset_config()
    reset_global_registry()
    ObservabilityHooks.reset_instance()
    yield
    reset_config()
    reset_global_registry()
    ObservabilityHooks.reset_instance()


@pytest.fixture
def metrics() -> InMemoryMetricHook:
    """Register an in-memory metric hook and return it."""
    hook = InMemoryMetricHook()
    ObservabilityHooks.get_instance().add_metric_hook(hook)
    return hook


# ============================================================================
# User Fixtures
# ============================================================================


@pytest.fixture
def admin_user() -> UserContext:
    """Create an admin user."""
    return UserContext(user_id="admin_1", roles=["admin"])


@pytest.fixture
def author_user() -> UserContext:
    """Create a regular user who writes posts."""
    return UserContext(user_id="author_1", roles=["user"])


@pytest.fixture
def guest_user() -> UserContext:
    """Create a guest user with no ownership of anything."""
    return UserContext(user_id="guest_1", roles=["guest"])


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def blog() -> Blog:
    return Blog(id=1, owner_id="author_1")


@pytest.fixture
def post(blog: Blog) -> Post:
    """An unpublished post written by author_1."""
    return Post(id=10, author_id="author_1", published=False, blog=blog)


@pytest.fixture
def published_post(blog: Blog) -> Post:
    return Post(id=11, author_id="someone_else", published=True, blog=blog)


@pytest.fixture
def posts(post: Post, published_post: Post, blog: Blog) -> list[Post]:
    """A mixed collection of posts."""
    return [
        post,
        published_post,
        Post(id=12, author_id="someone_else", published=False, blog=blog),
    ]


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def registry() -> PolicyRegistry:
    """A registry with the Post and Blog policies."""
    registry = PolicyRegistry()
    registry.register(Post, PostPolicy)
    registry.register(Blog, BlogPolicy)
    return registry


@pytest.fixture
def evaluator(registry: PolicyRegistry) -> RuleEvaluator:
    return RuleEvaluator(registry)


@pytest.fixture
def make_scope(evaluator: RuleEvaluator):
    """Factory for evaluation scopes bound to the test registry."""
    def factory(**values) -> EvaluationScope:
        return EvaluationScope(values, evaluator=evaluator)
    return factory


@pytest.fixture
def verdict(registry: PolicyRegistry) -> Verdict:
    """A Verdict instance over the test registry."""
    return Verdict(registry=registry)
