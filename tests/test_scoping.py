"""Tests for verdict.scoping module."""

from __future__ import annotations

import pytest

from tests.models import Blog, Post, PostQuery
from verdict import (
    EvaluationScope,
    PolicyNotFound,
    PolicyRegistry,
    ScopeNotDefined,
    ScopeResolver,
    UserContext,
)
from verdict.observability import METRIC_SCOPE_REQUESTS, InMemoryMetricHook


@pytest.fixture
def resolver(registry: PolicyRegistry) -> ScopeResolver:
    return ScopeResolver(registry)


class TestDataScopes:
    """Tests for scoping plain collections."""

    def test_scope_filters_collection(self, resolver, make_scope, author_user, posts):
        """Test that a user sees published posts and their own drafts."""
        scope = make_scope(user=author_user)

        scoped = resolver.scope(scope, posts)

        assert [p.id for p in scoped] == [10, 11]

    def test_admin_sees_everything(self, resolver, make_scope, admin_user, posts):
        scope = make_scope(user=admin_user)
        assert len(resolver.scope(scope, posts)) == 3

    def test_scoping_is_idempotent(self, resolver, make_scope, guest_user, posts):
        """Test that scoping a scoped collection changes nothing."""
        scope = make_scope(user=guest_user)

        once = resolver.scope(scope, posts)
        twice = resolver.scope(scope, once)

        assert [p.id for p in twice] == [p.id for p in once] == [11]

    def test_empty_collection_with_explicit_target(self, resolver, make_scope, guest_user):
        """Test scoping an empty list by naming the target type."""
        scope = make_scope(user=guest_user)
        assert resolver.scope(scope, [], target=Post) == []

    def test_empty_collection_without_target(self, resolver, make_scope, guest_user):
        scope = make_scope(user=guest_user)

        with pytest.raises(PolicyNotFound, match="target=") as exc_info:
            resolver.scope(scope, [])

        assert exc_info.value.hint is not None

    def test_context_override(self, resolver, make_scope, admin_user, guest_user, posts):
        scope = make_scope(user=admin_user)

        scoped = resolver.scope(scope, posts, context={"user": guest_user})

        assert [p.id for p in scoped] == [11]


class TestScopeNotDefined:
    """Tests for policies without a matching scope."""

    def test_policy_without_scope(self, resolver, make_scope, admin_user, blog):
        """Test that a policy with no scopes raises ScopeNotDefined."""
        scope = make_scope(user=admin_user)

        with pytest.raises(ScopeNotDefined) as exc_info:
            resolver.scope(scope, [blog, Blog(id=2, owner_id="x")])

        assert exc_info.value.policy_name == "BlogPolicy"
        assert exc_info.value.scope_type == "data"

    def test_unknown_named_scope(self, resolver, make_scope, admin_user, posts):
        scope = make_scope(user=admin_user)

        with pytest.raises(ScopeNotDefined) as exc_info:
            resolver.scope(scope, posts, name="drafts")

        assert "named 'drafts'" in str(exc_info.value)

    def test_collection_is_never_returned_unfiltered(self, resolver, make_scope, admin_user, posts):
        """Test that an unsupported scope type raises instead of passing through."""
        scope = make_scope(user=admin_user)

        with pytest.raises(ScopeNotDefined):
            resolver.scope(scope, posts, scope_type="graph")


class TestScopeTypeInference:
    """Tests for inferring scope types from collections."""

    def test_builtin_matchers(self, resolver):
        assert resolver.infer_scope_type([1]) == "data"
        assert resolver.infer_scope_type({1}) == "data"
        assert resolver.infer_scope_type(PostQuery([])) == "relation"
        assert resolver.infer_scope_type(object()) == "data"

    def test_relation_scope(self, resolver, make_scope, author_user, posts):
        """Test that a query builder is scoped through its model's policy."""
        scope = make_scope(user=author_user)

        scoped = resolver.scope(scope, PostQuery(posts))

        assert isinstance(scoped, PostQuery)
        assert scoped.filters == {"author_id": "author_1"}
        assert [p.id for p in scoped.all()] == [10]

    def test_custom_matcher_takes_precedence(self, resolver):
        resolver.register_matcher("frozen", lambda c: isinstance(c, frozenset))

        assert resolver.infer_scope_type(frozenset()) == "frozen"
        assert resolver.infer_scope_type([]) == "data"

    def test_scope_target(self):
        class Declared:
            policy_class = object

        declared = Declared()
        post = Post(id=1, author_id="a")

        assert ScopeResolver.scope_target(declared) is declared
        assert ScopeResolver.scope_target(PostQuery([])) is Post
        assert ScopeResolver.scope_target([post]) is post
        assert ScopeResolver.scope_target([]) == []


class TestScopeMetrics:
    def test_scope_emits_counter(self, resolver, make_scope, admin_user, posts,
                                 metrics: InMemoryMetricHook):
        scope = make_scope(user=admin_user)
        resolver.scope(scope, posts)

        assert metrics.get_counter(
            METRIC_SCOPE_REQUESTS, tags={"policy": "post", "scope_type": "data"}
        ) == 1.0


def test_scope_with_fresh_evaluation_scope(registry, admin_user: UserContext, posts):
    """Test scoping with a scope that was not created by a fixture."""
    resolver = ScopeResolver(registry)
    with EvaluationScope({"user": admin_user}) as scope:
        assert len(resolver.scope(scope, posts)) == 3
