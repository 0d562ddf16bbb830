"""
Failure reasons for Verdict.

A denied rule produces a `Reason` tree: the root names the rule that was
asked for, and children name the nested rules that also failed while it
ran. The `ReasonCollector` builds that tree with a stack of frames, one
frame per rule being evaluated. Frames are popped when the rule exits,
whether it returned or raised, and are merged into their parent only when
the rule failed.

Rendering (`details`, `full_messages`) only reads finished trees.

Example:
    >>> collector = ReasonCollector()
    >>> with collector.frame("post", "edit?") as outer:
    ...     with collector.frame("user", "active?") as inner:
    ...         inner.failed = True
    ...     outer.failed = True
    >>> details(outer.reason)
    {'user': ['active?']}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Not authorized"
FULL_MESSAGE_TEMPLATE = "You are not authorized to {rule} this {policy}"


@dataclass(frozen=True)
class Reason:
    """
    One node of a failure reason tree.

    Attributes:
        policy: Identifier of the policy that owns the rule (e.g. "post").
        rule: The rule name that failed (e.g. "edit?").
        children: Nested failures recorded while this rule ran.
        message: Optional custom message declared by the policy.
    """

    policy: str
    rule: str
    children: tuple[Reason, ...] = ()
    message: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.policy, self.rule)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def leaves(self) -> Iterator[Reason]:
        """Yield the leaf reasons in depth-first order."""
        if self.is_leaf:
            yield self
            return
        for child in self.children:
            yield from child.leaves()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {"policy": self.policy, "rule": self.rule}
        if self.message:
            data["message"] = self.message
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def _merge(existing: Reason, incoming: Reason) -> Reason:
    """Fold two nodes with the same key into one, merging their children."""
    children = list(existing.children)
    for child in incoming.children:
        _add_child(children, child)
    return Reason(
        policy=existing.policy,
        rule=existing.rule,
        children=tuple(children),
        message=existing.message or incoming.message,
    )


def _add_child(children: list[Reason], reason: Reason) -> None:
    for index, child in enumerate(children):
        if child.key == reason.key:
            children[index] = _merge(child, reason)
            return
    children.append(reason)


@dataclass
class ReasonFrame:
    """
    Mutable handle for the rule currently being evaluated.

    Set `failed` to True to have the frame merged into its parent when it
    is popped. After popping, `reason` holds the finished subtree (or None
    if the rule did not fail).
    """

    policy: str
    rule: str
    message: str | None = None
    failed: bool = False
    children: list[Reason] = field(default_factory=list)
    reason: Reason | None = None

    def add(self, reason: Reason) -> None:
        """Attach a nested failure, folding duplicates of the same rule."""
        _add_child(self.children, reason)

    def build(self) -> Reason:
        return Reason(
            policy=self.policy,
            rule=self.rule,
            children=tuple(self.children),
            message=self.message,
        )


class ReasonCollector:
    """
    Collects failure reasons for one evaluation scope.

    A collector is not shared between evaluation scopes; frames are a plain
    call-stack-bound list.
    """

    def __init__(self) -> None:
        self._stack: list[ReasonFrame] = []
        self._detached: list[Reason] = []

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def detached(self) -> tuple[Reason, ...]:
        """Failures recorded while no frame was open."""
        return tuple(self._detached)

    def current_frame(self) -> ReasonFrame | None:
        """Return the innermost open frame, if any."""
        return self._stack[-1] if self._stack else None

    def record_failure(self, policy: str, rule: str, message: str | None = None) -> None:
        """Record an atomic failure in the current frame."""
        self.merge(Reason(policy=policy, rule=rule, message=message))

    def merge(self, reason: Reason) -> None:
        """Attach an already built subtree to the current frame."""
        frame = self.current_frame()
        if frame is None:
            _add_child(self._detached, reason)
        else:
            frame.add(reason)

    @contextmanager
    def frame(
        self, policy: str, rule: str, message: str | None = None
    ) -> Iterator[ReasonFrame]:
        """
        Open a frame for a rule evaluation.

        The frame is always popped on exit. It is merged into the parent
        frame only if it was marked failed and the block did not raise.
        """
        frame = ReasonFrame(policy=policy, rule=rule, message=message)
        self._stack.append(frame)
        completed = False
        try:
            yield frame
            completed = True
        finally:
            popped = self._stack.pop()
            if popped is not frame:
                raise RuntimeError(f"Reason frame stack corrupted at {policy}.{rule}")
            if completed and frame.failed:
                frame.reason = frame.build()
                parent = self.current_frame()
                if parent is not None:
                    parent.add(frame.reason)

    def with_frame(
        self,
        policy: str,
        rule: str,
        fn: Callable[[], bool],
        message: str | None = None,
    ) -> tuple[bool, Reason | None]:
        """Run `fn` inside a frame and return its value and reason subtree."""
        with self.frame(policy, rule, message) as frame:
            value = bool(fn())
            frame.failed = not value
        return value, frame.reason

    def clear(self) -> None:
        self._stack.clear()
        self._detached.clear()


def details(reason: Reason | None) -> dict[str, list[str]]:
    """
    Map policy identifiers to the rule names that failed.

    Only leaves are reported, in the order they were recorded.
    """
    result: dict[str, list[str]] = {}
    if reason is None:
        return result
    for leaf in reason.leaves():
        rules = result.setdefault(leaf.policy, [])
        if leaf.rule not in rules:
            rules.append(leaf.rule)
    return result


def full_messages(
    reason: Reason | None,
    messages: Mapping[tuple[str, str], str] | None = None,
) -> list[str]:
    """
    Render one human-readable message per leaf reason.

    Args:
        reason: The reason tree to render.
        messages: Optional overrides keyed by (policy, rule).
    """
    if reason is None:
        return []
    rendered: list[str] = []
    for leaf in reason.leaves():
        text = None
        if messages:
            text = messages.get(leaf.key)
        if text is None:
            text = leaf.message or FULL_MESSAGE_TEMPLATE.format(
                rule=leaf.rule, policy=leaf.policy
            )
        if text not in rendered:
            rendered.append(text)
    return rendered
