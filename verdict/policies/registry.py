"""
Policy registry for Verdict.

This module provides the PolicyRegistry class, which maps target types
(optionally qualified by a namespace) to policy classes. The explicit
type table is the primitive; looking a policy up by naming convention
(`Post` -> `PostPolicy`) is an opt-in layer on top of it.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from verdict.exceptions import ConfigurationError, PolicyNotFound

if TYPE_CHECKING:
    from verdict.policies.base import Policy

logger = logging.getLogger(__name__)


def _namespace_chain(namespace: str | None) -> list[str | None]:
    """
    Namespaces to try, most specific first.

    Example:
        >>> _namespace_chain("admin.reports")
        ['admin.reports', 'admin', None]
    """
    if not namespace:
        return [None]
    parts = namespace.split(".")
    chain: list[str | None] = [".".join(parts[:i]) for i in range(len(parts), 0, -1)]
    chain.append(None)
    return chain


class PolicyRegistry:
    """
    Registry mapping target types to policy classes.

    Lookup order for `lookup(target, namespace, policy)`:
        1. An explicit `policy` argument wins unconditionally.
        2. A `policy_class` attribute on the target (or its class).
        3. The type table, walking the target type's MRO so subclasses
           inherit their parent's policy. Class targets are looked up as
           themselves; string targets by registered name.
        4. With `infer_by_name`, a policy registered by convention and
           named `<TypeName>Policy`.
        5. The parent registry, if any.

    For steps 3 and 4 a namespace-qualified entry is preferred, falling
    back through outer namespaces to the default one.

    Features:
        - Decorator-based registration (@registry.policy(Post))
        - Per-application registries overriding a shared parent
        - Freezing once configuration is complete

    Example:
        >>> registry = PolicyRegistry()
        >>>
        >>> @registry.policy(Post)
        ... class PostPolicy(Policy):
        ...     @rule("show?")
        ...     def show(self) -> bool:
        ...         return True
        >>>
        >>> registry.lookup(post)
        <class 'PostPolicy'>

    Thread Safety:
        Registration takes an internal lock. The tables are read without
        locking; registration after startup is not supported (see freeze()).
    """

    def __init__(
        self,
        parent: PolicyRegistry | None = None,
        infer_by_name: bool = False,
    ) -> None:
        """
        Initialize the registry.

        Args:
            parent: Registry consulted when this one has no match.
            infer_by_name: Enable lookup by `<TypeName>Policy` naming.
        """
        self._parent = parent
        self._infer_by_name = infer_by_name
        self._by_type: dict[tuple[type, str | None], type[Policy]] = {}
        self._by_name: dict[tuple[str, str | None], type[Policy]] = {}
        self._by_convention: dict[tuple[str, str | None], type[Policy]] = {}
        self._lock = threading.RLock()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """End the configuration phase; further registration raises."""
        with self._lock:
            self._frozen = True
            logger.debug(f"Policy registry frozen with {len(self.list_policies())} entries")

    def _check_writable(self) -> None:
        if self._frozen:
            raise ConfigurationError(
                config_key="policy_registry",
                expected="registration before freeze()",
                received="register after freeze",
            )

    # Registration

    def policy(self, target_type: type | str, namespace: str | None = None) -> Any:
        """
        Decorator for registering a policy class.

        Args:
            target_type: The type (or name) of target this policy handles.
            namespace: Optional namespace, e.g. "admin".

        Example:
            >>> @registry.policy(Post, namespace="admin")
            ... class AdminPostPolicy(Policy):
            ...     ...
        """
        def decorator(policy_class: type[Policy]) -> type[Policy]:
            self.register(target_type, policy_class, namespace=namespace)
            return policy_class
        return decorator

    def register(
        self,
        target_type: type | str,
        policy_class: type[Policy],
        namespace: str | None = None,
    ) -> None:
        """
        Register a policy class for a target type or target name.

        Re-registering the same key overwrites the previous entry with a
        warning.

        Raises:
            ConfigurationError: If the registry is frozen.
        """
        with self._lock:
            self._check_writable()
            table: dict[Any, type[Policy]]
            if isinstance(target_type, str):
                table, label = self._by_name, target_type
            else:
                table, label = self._by_type, target_type.__name__
            key = (target_type, namespace)

            if key in table:
                logger.warning(
                    f"Overwriting policy for '{label}' (namespace={namespace}): "
                    f"{table[key].__name__} -> {policy_class.__name__}"
                )
            table[key] = policy_class
            logger.debug(
                f"Registered policy '{policy_class.__name__}' for '{label}' "
                f"(namespace={namespace})"
            )

    def register_by_convention(
        self, policy_class: type[Policy], namespace: str | None = None
    ) -> None:
        """
        Make a policy class available to name inference.

        `PostPolicy` becomes the inferred policy for targets of a type named
        `Post` when the registry was created with `infer_by_name=True`.
        """
        with self._lock:
            self._check_writable()
            self._by_convention[(policy_class.__name__, namespace)] = policy_class
            logger.debug(
                f"Registered policy '{policy_class.__name__}' by convention "
                f"(namespace={namespace})"
            )

    def unregister(self, target_type: type | str, namespace: str | None = None) -> bool:
        """Remove a registration. Returns True if one was removed."""
        with self._lock:
            self._check_writable()
            table: dict[Any, type[Policy]] = (
                self._by_name if isinstance(target_type, str) else self._by_type
            )
            if (target_type, namespace) in table:
                del table[(target_type, namespace)]
                return True
            return False

    def clear(self) -> None:
        """Clear all registrations and unfreeze. Useful for testing."""
        with self._lock:
            self._by_type.clear()
            self._by_name.clear()
            self._by_convention.clear()
            self._frozen = False
            logger.debug("Cleared all registered policies")

    # Lookup

    def lookup(
        self,
        target: Any,
        namespace: str | None = None,
        policy: type[Policy] | None = None,
    ) -> type[Policy]:
        """
        Resolve the policy class for a target.

        Args:
            target: The object being authorized.
            namespace: Optional namespace to prefer.
            policy: Explicit policy class; returned as is.

        Raises:
            PolicyNotFound: If nothing matches.
        """
        if policy is not None:
            return policy

        declared = getattr(target, "policy_class", None)
        if declared is not None:
            return declared

        found = self._find(target, namespace)
        if found is not None:
            return found

        available = sorted(self.list_policies())
        raise PolicyNotFound(self._describe(target), namespace, available)

    def _find(self, target: Any, namespace: str | None) -> type[Policy] | None:
        chain = _namespace_chain(namespace)

        if isinstance(target, str):
            for ns in chain:
                found = self._by_name.get((target, ns))
                if found is not None:
                    return found
        else:
            target_type = target if isinstance(target, type) else type(target)
            for ns in chain:
                for klass in target_type.__mro__:
                    found = self._by_type.get((klass, ns))
                    if found is not None:
                        if klass is not target_type:
                            logger.debug(
                                f"Policy for '{target_type.__name__}' inherited "
                                f"from '{klass.__name__}'"
                            )
                        return found

            if self._infer_by_name:
                for ns in chain:
                    for klass in target_type.__mro__:
                        found = self._by_convention.get((f"{klass.__name__}Policy", ns))
                        if found is not None:
                            logger.debug(
                                f"Inferred policy '{found.__name__}' for "
                                f"'{target_type.__name__}'"
                            )
                            return found

        if self._parent is not None:
            return self._parent._find(target, namespace)
        return None

    def has_policy(self, target: Any, namespace: str | None = None) -> bool:
        """Check whether `lookup` would succeed for a target."""
        try:
            self.lookup(target, namespace)
        except PolicyNotFound:
            return False
        return True

    def list_policies(self) -> dict[str, str]:
        """
        List registrations as "Target[@namespace]" -> policy class name.

        Example:
            >>> registry.list_policies()
            {'Post': 'PostPolicy', 'Post@admin': 'AdminPostPolicy'}
        """
        listing: dict[str, str] = {}
        if self._parent is not None:
            listing.update(self._parent.list_policies())
        for (target_type, ns), policy_class in self._by_type.items():
            listing[self._label(target_type.__name__, ns)] = policy_class.__name__
        for (name, ns), policy_class in self._by_name.items():
            listing[self._label(name, ns)] = policy_class.__name__
        if self._infer_by_name:
            for (name, ns), policy_class in self._by_convention.items():
                listing[self._label(f"~{name}", ns)] = policy_class.__name__
        return listing

    @staticmethod
    def _label(name: str, namespace: str | None) -> str:
        return f"{name}@{namespace}" if namespace else name

    @staticmethod
    def _describe(target: Any) -> str:
        if isinstance(target, str):
            return target
        if isinstance(target, type):
            return target.__name__
        return type(target).__name__


# Global registry instance for convenience
_global_registry: PolicyRegistry | None = None
_global_registry_lock = threading.Lock()


def get_global_registry() -> PolicyRegistry:
    """
    Get the global policy registry instance.

    Creates one if it doesn't exist.
    """
    global _global_registry
    if _global_registry is not None:
        return _global_registry
    with _global_registry_lock:
        # Double-check after acquiring lock
        if _global_registry is None:
            _global_registry = PolicyRegistry()
        return _global_registry


def reset_global_registry() -> None:
    """
    Reset the global registry.

    Primarily useful for testing.
    """
    global _global_registry
    with _global_registry_lock:
        if _global_registry is not None:
            _global_registry.clear()
        _global_registry = None
