"""
Tests for the core Verdict class.

Tests cover:
- Initialization and configuration
- Policy registration via decorator
- Authorization entry points (authorize, allowed_to, check)
- Scoping and exposing permissions through the facade
- Concurrent evaluation scopes
- Testing helpers
"""

from __future__ import annotations

import asyncio

import pytest

from tests.models import Blog, BlogPolicy, Invoice, Post, PostPolicy, PostQuery
from verdict import (
    AuthorizationContext,
    ConfigurationError,
    NotAuthorizedError,
    Policy,
    PolicyNotFound,
    PolicyRegistry,
    ScopeNotDefined,
    UserContext,
    Verdict,
    VerdictConfig,
    configure,
    rule,
)
from verdict.testing import AuthorizationRecorder, expect_authorized


class TestVerdictInitialization:
    """Tests for Verdict initialization."""

    def test_default_initialization(self):
        verdict = Verdict()

        assert isinstance(verdict.registry, PolicyRegistry)
        assert verdict.evaluator.registry is verdict.registry
        assert verdict.scope_resolver.registry is verdict.registry

    def test_config_follows_process_default(self):
        verdict = Verdict()
        configure(default_rule="index?")

        assert verdict.config.default_rule == "index?"

    def test_fixed_config(self):
        verdict = Verdict(config=VerdictConfig(raise_on_deny=False))
        configure(raise_on_deny=True)

        assert verdict.config.raise_on_deny is False

    def test_decorator_registration(self, post: Post, admin_user: UserContext):
        verdict = Verdict()

        @verdict.policy(Post)
        class SimplePostPolicy(Policy):
            @rule("show?")
            def show(self) -> bool:
                return True

        assert verdict.lookup_policy(post) is SimplePostPolicy
        assert verdict.allowed_to("show?", post, context={"user": admin_user})

    def test_freeze(self):
        verdict = Verdict()
        verdict.register_policy(Post, PostPolicy)
        verdict.freeze()

        with pytest.raises(ConfigurationError):
            verdict.register_policy(Blog, BlogPolicy)

    def test_infer_by_name(self, blog: Blog):
        verdict = Verdict(infer_by_name=True)
        verdict.registry.register_by_convention(BlogPolicy)

        assert verdict.lookup_policy(blog) is BlogPolicy


class TestScenarios:
    """End-to-end checks of the main authorization outcomes."""

    def test_admin_allowed(self, verdict: Verdict, admin_user: UserContext, post: Post):
        """An admin may edit any post; the exposed field carries no reasons."""
        fields = verdict.expose(post, ["edit?"], context={"user": admin_user})

        assert fields["can_edit"].model_dump(by_alias=True) == {
            "value": True,
            "message": None,
            "reasons": None,
        }

    def test_guest_denied(self, verdict: Verdict, guest_user: UserContext, post: Post):
        """A guest may not edit; the denial explains itself."""
        with pytest.raises(NotAuthorizedError) as exc_info:
            verdict.authorize(post, "edit?", context={"user": guest_user})

        result = exc_info.value.result
        assert result.message == "Not authorized"
        assert result.details == {"post": ["edit?"]}
        assert result.full_messages == ["You are not authorized to edit? this post"]

        fields = verdict.expose(post, ["edit?"], context={"user": guest_user})
        assert fields["can_edit"].model_dump(by_alias=True) == {
            "value": False,
            "message": "Not authorized",
            "reasons": {
                "details": {"post": ["edit?"]},
                "fullMessages": ["You are not authorized to edit? this post"],
            },
        }

    def test_unregistered_target(self, verdict: Verdict, admin_user: UserContext):
        """A target with no policy is a configuration error, not a denial."""
        with pytest.raises(PolicyNotFound):
            verdict.authorize(Invoice(id=1), "show?", context={"user": admin_user})

    def test_scope_not_defined(self, verdict: Verdict, admin_user: UserContext, blog: Blog):
        """Scoping with a policy that declares no scope raises."""
        with pytest.raises(ScopeNotDefined):
            verdict.authorized_scope([blog], context={"user": admin_user})


class TestAuthorizationMethods:
    """Tests for the facade entry points."""

    def test_authorize_returns_result(self, verdict, author_user, post):
        result = verdict.authorize(post, "edit?", context={"user": author_user})
        assert result.value is True

    def test_authorize_non_raising(self, verdict, guest_user, post):
        result = verdict.authorize(post, "edit?", context={"user": guest_user}, raise_on_deny=False)
        assert result.value is False

    def test_raise_mode_from_config(self, verdict, guest_user, post):
        configure(raise_on_deny=False)
        assert verdict.authorize(post, "edit?", context={"user": guest_user}).value is False

    def test_check_never_raises(self, verdict, guest_user, post):
        assert verdict.check(post, "destroy?", context={"user": guest_user}).value is False

    def test_allowed_to(self, verdict, admin_user, guest_user, post):
        assert verdict.allowed_to("edit?", post, context={"user": admin_user}) is True
        assert verdict.allowed_to("edit?", post, context={"user": guest_user}) is False

    def test_default_rule(self, verdict, guest_user, published_post):
        assert verdict.authorize(published_post, context={"user": guest_user}).rule == "show?"

    def test_namespace(self, verdict, guest_user, post):
        class AdminPostPolicy(PostPolicy):
            @rule("edit?")
            def edit(self) -> bool:
                return self.user.has_role("admin")

        verdict.register_policy(Post, AdminPostPolicy, namespace="admin")
        author = UserContext(user_id="author_1", roles=["user"])

        assert verdict.allowed_to("edit?", post, context={"user": author}) is True
        assert verdict.allowed_to("edit?", post, context={"user": author}, namespace="admin") is False

    def test_shared_scope(self, verdict, guest_user, post, posts):
        """Test several checks and a scoping call in one evaluation."""
        with verdict.evaluation(user=guest_user) as scope:
            assert verdict.allowed_to("edit?", post, scope=scope) is False
            assert verdict.allowed_to("show?", post, scope=scope) is False
            visible = verdict.authorized_scope(posts, scope=scope)
            assert scope.cache_size == 2

        assert [p.id for p in visible] == [11]
        assert scope.cache_size == 0

    def test_scope_context_override(self, verdict, admin_user, guest_user, post):
        with verdict.evaluation(user=admin_user) as scope:
            assert verdict.allowed_to("edit?", post, scope=scope) is True
            assert verdict.allowed_to("edit?", post, scope=scope, context={"user": guest_user}) is False

    def test_evaluation_with_resolvers(self, verdict, post):
        """Test that a lazily resolved user is loaded once per evaluation."""
        loads = []

        def load_user():
            loads.append(1)
            return UserContext(user_id="author_1", roles=["user"])

        context = AuthorizationContext().with_resolver("user", load_user)
        with verdict.evaluation(context) as scope:
            verdict.allowed_to("edit?", post, scope=scope)
            verdict.allowed_to("destroy?", post, scope=scope)

        assert loads == [1]

    def test_authorized_scope_relation(self, verdict, author_user, posts):
        scoped = verdict.authorized_scope(PostQuery(posts), context={"user": author_user})
        assert scoped.filters == {"author_id": "author_1"}

    def test_authorized_scope_named_target(self, verdict, guest_user):
        assert verdict.authorized_scope([], target=Post, context={"user": guest_user}) == []

    def test_expose_default_rule(self, verdict, guest_user, published_post):
        fields = verdict.expose(published_post, context={"user": guest_user})
        assert list(fields) == ["can_show"]
        assert fields["can_show"].value is True

    def test_expose_custom_prefix(self, verdict, admin_user, post):
        fields = verdict.expose(post, ["edit?", "destroy?"], context={"user": admin_user}, prefix="may_")
        assert list(fields) == ["may_edit", "may_destroy"]

    def test_policy_for(self, verdict, admin_user, post):
        policy = verdict.policy_for(post, {"user": admin_user})

        assert isinstance(policy, PostPolicy)
        assert policy.user is admin_user
        assert policy.check("edit?") is True


class TestConcurrentScopes:
    """Tests for independent evaluation scopes running concurrently."""

    @pytest.mark.asyncio
    async def test_scopes_in_threads(self, verdict, admin_user, guest_user, post):
        """Test that concurrent scopes never see each other's results."""
        def check(user: UserContext) -> bool:
            with verdict.evaluation(user=user) as scope:
                return verdict.allowed_to("destroy?", post, scope=scope)

        users = [admin_user, guest_user] * 10
        results = await asyncio.gather(*(asyncio.to_thread(check, user) for user in users))

        assert results == [True, False] * 10

    @pytest.mark.asyncio
    async def test_single_flight_across_tasks(self, verdict, post):
        """Test that threads sharing a context load the user once."""
        loads = []

        def load_user():
            loads.append(1)
            return UserContext(user_id="author_1", roles=["user"])

        context = AuthorizationContext().with_resolver("user", load_user)

        def check() -> bool:
            with verdict.evaluation(context) as scope:
                return verdict.allowed_to("edit?", post, scope=scope)

        results = await asyncio.gather(*(asyncio.to_thread(check) for _ in range(8)))

        assert all(results)
        assert loads == [1]


class TestTestingHelpers:
    """Tests for verdict.testing recorders."""

    def test_expect_authorized(self, verdict, admin_user, post):
        with expect_authorized(verdict, "edit?", post):
            verdict.authorize(post, "edit?", context={"user": admin_user})

    def test_expect_authorized_fails(self, verdict, admin_user, post):
        with pytest.raises(AssertionError, match="Expected edit\\? to be authorized"):
            with expect_authorized(verdict, "edit?", post):
                verdict.authorize(post, "show?", context={"user": admin_user})

    def test_nested_checks_do_not_count(self, verdict, guest_user, post):
        """Test that edit? called from show? is not a top-level authorization."""
        with pytest.raises(AssertionError):
            with expect_authorized(verdict, "edit?", post):
                verdict.allowed_to("show?", post, context={"user": guest_user})

    def test_recorder_sees_nested_checks(self, verdict, guest_user, post):
        with AuthorizationRecorder(verdict) as recorder:
            verdict.allowed_to("show?", post, context={"user": guest_user})

        assert [(c.rule, c.nested) for c in recorder.calls] == [("edit?", True), ("show?", False)]

        verdict.allowed_to("show?", post, context={"user": guest_user})
        assert len(recorder.calls) == 2

    def test_expect_authorized_with_policy(self, verdict, admin_user, post):
        with expect_authorized(verdict, "edit?", post, policy=PostPolicy) as recorder:
            verdict.authorize(post, "edit?", context={"user": admin_user})

        assert recorder.calls[0].describe().startswith("PostPolicy.edit? on ")
