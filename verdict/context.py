"""
Authorization context for Verdict.

An `AuthorizationContext` is an immutable mapping of named values (most
often `user`) handed to every rule. Values are either supplied directly or
produced on first use by a resolver function. Once resolved, a key keeps
its value for the lifetime of the context, and the resolver runs at most
once even when several threads ask for the same key at the same time.

Example:
    >>> ctx = AuthorizationContext({"account": account}).with_resolver(
    ...     "user", lambda: load_user(request)
    ... )
    >>> ctx.resolve("user") is ctx.resolve("user")
    True
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from verdict.exceptions import UnresolvableContextKey
from verdict.types import identity_key

logger = logging.getLogger(__name__)

Resolver = Callable[[], Any]


class AuthorizationContext(Mapping[str, Any]):
    """
    Lazily resolved, memoized context values for one evaluation scope.

    The set of keys and resolvers is fixed at construction; `with_value`,
    `with_resolver` and `merged` return new contexts. The only mutable
    state is the resolution cache, which is guarded for concurrent first
    access.

    Args:
        values: Values known up front.
        resolvers: Functions producing values on first access.
        parent: Context consulted for keys this one does not define.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        resolvers: Mapping[str, Resolver] | None = None,
        parent: AuthorizationContext | None = None,
    ) -> None:
        self._values: dict[str, Any] = dict(values or {})
        self._resolvers: dict[str, Resolver] = dict(resolvers or {})
        self._parent = parent
        self._resolved: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    # Construction helpers

    def with_value(self, key: str, value: Any) -> AuthorizationContext:
        """Return a new context with `key` bound to `value`."""
        values = {**self._values, key: value}
        resolvers = {k: v for k, v in self._resolvers.items() if k != key}
        return AuthorizationContext(values, resolvers, self._parent)

    def with_resolver(self, key: str, resolver: Resolver) -> AuthorizationContext:
        """Return a new context where `key` is produced by `resolver`."""
        values = {k: v for k, v in self._values.items() if k != key}
        resolvers = {**self._resolvers, key: resolver}
        return AuthorizationContext(values, resolvers, self._parent)

    def merged(self, values: Mapping[str, Any]) -> AuthorizationContext:
        """
        Return a child context overriding some values.

        Keys not overridden are read from this context, so values already
        resolved here are reused rather than resolved again.
        """
        if not values:
            return self
        return AuthorizationContext(values, parent=self)

    # Resolution

    def _defines(self, key: str) -> bool:
        return key in self._values or key in self._resolvers

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def resolve(self, key: str) -> Any:
        """
        Return the value for `key`, running its resolver on first use.

        Raises:
            UnresolvableContextKey: If no value or resolver exists for `key`.
        """
        if key in self._values:
            return self._values[key]

        if key in self._resolvers:
            if key in self._resolved:
                return self._resolved[key]
            with self._key_lock(key):
                # Another thread may have finished while we waited.
                if key not in self._resolved:
                    logger.debug(f"Resolving context key '{key}'")
                    self._resolved[key] = self._resolvers[key]()
            return self._resolved[key]

        if self._parent is not None:
            return self._parent.resolve(key)

        raise UnresolvableContextKey(key, sorted(self.keys()))

    def is_resolved(self, key: str) -> bool:
        """Whether `key` already has a value without running a resolver."""
        if key in self._values or key in self._resolved:
            return True
        if key in self._resolvers:
            return False
        return self._parent is not None and self._parent.is_resolved(key)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self:
            return default
        return self.resolve(key)

    # Identity

    @property
    def cache_key(self) -> tuple[Any, ...]:
        """
        Identity of this context for memoization.

        Explicit values contribute their `identity_key`; resolver-backed keys
        contribute the resolver itself, so two contexts built from the same
        resolvers share results only when the resolvers are identical.
        """
        own = tuple(
            sorted(
                [(key, identity_key(value)) for key, value in self._values.items()]
                + [(key, ("resolver", id(fn))) for key, fn in self._resolvers.items()],
                key=lambda item: item[0],
            )
        )
        parent = self._parent.cache_key if self._parent is not None else ()
        return (own, parent)

    # Mapping protocol

    def __getitem__(self, key: str) -> Any:
        try:
            return self.resolve(key)
        except UnresolvableContextKey:
            raise KeyError(key) from None

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        if self._defines(key):
            return True
        return self._parent is not None and key in self._parent

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for key in [*self._values, *self._resolvers]:
            if key not in seen:
                seen.add(key)
                yield key
        if self._parent is not None:
            for key in self._parent:
                if key not in seen:
                    seen.add(key)
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    # Comparing contexts item by item would run every resolver.
    def __eq__(self, other: object) -> bool:
        return self is other

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"AuthorizationContext(keys={list(self)})"
