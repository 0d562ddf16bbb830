"""
Domain objects and policies shared by the test modules.

Policies here are not registered anywhere; the `registry` fixture in
conftest.py registers them per test.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from verdict import Policy, rule, scope_for


@dataclass(eq=False)
class Blog:
    id: int
    owner_id: str


@dataclass(eq=False)
class Post:
    id: int
    author_id: str
    published: bool = False
    blog: Blog | None = None


@dataclass(eq=False)
class Invoice:
    id: int
    amount: float = 0.0


class PostQuery:
    """Minimal query builder with a `filter` method, like an ORM relation."""

    model = Post

    def __init__(self, posts: list[Post], filters: dict[str, Any] | None = None):
        self.posts = posts
        self.filters = filters or {}

    def filter(self, **conditions: Any) -> PostQuery:
        return PostQuery(self.posts, {**self.filters, **conditions})

    def all(self) -> list[Post]:
        return [
            post for post in self.posts
            if all(getattr(post, key) == value for key, value in self.filters.items())
        ]


class BlogPolicy(Policy[Blog]):
    @rule("manage?")
    def manage(self) -> bool:
        return self.user.role == "admin" or self.target.owner_id == self.user.user_id


class PostPolicy(Policy[Post]):
    aliases = {"update?": "edit?"}

    @rule("show?")
    def show(self) -> bool:
        return self.target.published or self.allowed_to("edit?")

    @rule("edit?")
    def edit(self) -> bool:
        return self.user.role == "admin" or self.target.author_id == self.user.user_id

    @rule("destroy?")
    def destroy(self) -> bool:
        return self.allowed_to("edit?") and self.allowed_to("manage?", self.target.blog)

    @scope_for("data")
    def visible(self, posts: Any) -> list[Post]:
        if self.user.role == "admin":
            return list(posts)
        return [
            post for post in posts
            if post.published or post.author_id == self.user.user_id
        ]

    @scope_for("relation")
    def visible_relation(self, query: PostQuery) -> PostQuery:
        if self.user.role == "admin":
            return query
        return query.filter(author_id=self.user.user_id)

