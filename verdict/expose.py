"""
Permission payloads for binding layers.

A binding layer (an API or query framework) exposes one permission field
per rule, e.g. `can_edit`, whose value is a `PermissionPayload`. The models
are pydantic so the binding layer can dump them directly; `message` and
`reasons` are null exactly when `value` is true.

Example:
    >>> payload = PermissionPayload.from_result(result)
    >>> payload.model_dump(by_alias=True)
    {'value': False, 'message': 'Not authorized',
     'reasons': {'details': {'post': ['edit?']},
                 'fullMessages': ['You are not authorized to edit? this post']}}
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from verdict.types import AuthorizationResult

if TYPE_CHECKING:
    from verdict.evaluator import EvaluationScope

logger = logging.getLogger(__name__)


class ReasonsPayload(BaseModel):
    """Structured failure reasons of a denied permission."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    details: dict[str, list[str]]
    full_messages: list[str] = Field(alias="fullMessages")


class PermissionPayload(BaseModel):
    """The exposed form of an AuthorizationResult."""

    model_config = ConfigDict(frozen=True)

    value: bool
    message: str | None = None
    reasons: ReasonsPayload | None = None

    @model_validator(mode="after")
    def _nulls_match_value(self) -> PermissionPayload:
        if self.value and (self.message is not None or self.reasons is not None):
            raise ValueError("an allowed permission has no message or reasons")
        if not self.value and (self.message is None or self.reasons is None):
            raise ValueError("a denied permission needs a message and reasons")
        return self

    @classmethod
    def from_result(cls, result: AuthorizationResult) -> PermissionPayload:
        if result.value:
            return cls(value=True)
        return cls(
            value=False,
            message=result.message,
            reasons=ReasonsPayload(
                details=result.details,
                full_messages=result.full_messages,
            ),
        )


def field_name(rule: str, prefix: str = "can_") -> str:
    """
    Name of the exposed field for a rule.

    Example:
        >>> field_name("edit?")
        'can_edit'
        >>> field_name("publish-draft?", prefix="may_")
        'may_publish_draft'
    """
    base = re.sub(r"[^0-9a-zA-Z_]+", "_", rule.rstrip("?!")).strip("_")
    return f"{prefix}{base}"


def expose_permissions(
    evaluation: EvaluationScope,
    target: Any,
    rules: Iterable[str],
    *,
    prefix: str | None = None,
    **options: Any,
) -> dict[str, PermissionPayload]:
    """
    Evaluate several rules for one target and build permission fields.

    Denials never raise here; they become payloads with `value=False`.

    Args:
        evaluation: The evaluation scope.
        target: The object the permissions are about.
        rules: Rule names to expose.
        prefix: Field prefix; defaults to the scope config's
            `authorization_field_prefix`.
        **options: Passed to the evaluator (namespace, policy, context).
    """
    if prefix is None:
        prefix = evaluation.config.authorization_field_prefix
    fields: dict[str, PermissionPayload] = {}
    for rule in rules:
        result = evaluation.evaluator.apply(evaluation, target, rule, **options)
        fields[field_name(rule, prefix)] = PermissionPayload.from_result(result)
    logger.debug(f"Exposed {len(fields)} permission field(s) for {type(target).__name__}")
    return fields
