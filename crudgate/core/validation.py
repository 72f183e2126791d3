"""Declarative request body validation.

A schema maps field names to ``FieldRule``s. Each field is checked in order
required, type, minimum length, and the first failing check produces that
field's message. Empty values (None, "", 0, False) only fail when the field
is required; otherwise the remaining checks are skipped for them.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sized
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from fastapi import Request

from crudgate.core.errors import ValidationAppError
from crudgate.core.pipeline import CallNext, MiddlewareContext

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda value: isinstance(value, str),
    "number": _is_number,
    "boolean": lambda value: isinstance(value, bool),
    "object": lambda value: isinstance(value, Mapping),
    "array": lambda value: isinstance(value, list),
}


@dataclass(frozen=True)
class FieldRule:
    """Contract for one body field."""

    required: bool = False
    type: str | None = None
    min_length: int | None = None

    def __post_init__(self) -> None:
        if self.type is not None and self.type not in TYPE_CHECKS:
            raise ValueError(f"unsupported field type: {self.type!r}")


Schema = Mapping[str, FieldRule]


def coerce_schema(schema: Mapping[str, FieldRule | Mapping[str, Any]]) -> dict[str, FieldRule]:
    """Accept rules as ``FieldRule`` or plain dicts (``minLength`` allowed)."""
    rules: dict[str, FieldRule] = {}
    for name, rule in schema.items():
        if isinstance(rule, FieldRule):
            rules[name] = rule
            continue
        rules[name] = FieldRule(
            required=bool(rule.get("required", False)),
            type=rule.get("type"),
            min_length=rule.get("min_length", rule.get("minLength")),
        )
    return rules


def _is_empty(value: Any) -> bool:
    if value is None or value is False or value == "":
        return True
    if _is_number(value):
        return value == 0 or (isinstance(value, float) and math.isnan(value))
    return False


def validate_payload(schema: Schema, data: Mapping[str, Any]) -> dict[str, str]:
    """Check ``data`` against ``schema``.

    Returns:
        Field-indexed error messages; empty when the payload is valid.
    """
    errors: dict[str, str] = {}
    for name, rule in schema.items():
        value = data.get(name)

        if _is_empty(value):
            if rule.required:
                errors[name] = f"{name} is required"
            continue

        if rule.type and not TYPE_CHECKS[rule.type](value):
            errors[name] = f"{name} must be a {rule.type}"
        elif (
            rule.min_length is not None
            and isinstance(value, Sized)
            and len(value) < rule.min_length
        ):
            errors[name] = f"{name} must be at least {rule.min_length} characters"
    return errors


class ValidationHandler:
    """Pipeline handler rejecting bodies that break the schema with 400."""

    def __init__(
        self,
        schema: Mapping[str, FieldRule | Mapping[str, Any]],
        *,
        log: logging.Logger | None = None,
    ) -> None:
        self.schema = coerce_schema(schema)
        self._log = log or logger

    async def __call__(self, ctx: MiddlewareContext, call_next: CallNext) -> None:
        body = ctx.request.body if ctx.request.body is not None else {}
        if not isinstance(body, Mapping):
            ctx.respond(400, {"error": "Validation error"})
            return

        errors = validate_payload(self.schema, body)
        if errors:
            self._log.info(
                "validation.failed",
                extra={"fields": sorted(errors), "request_path": ctx.request.path},
            )
            ctx.respond(400, {"errors": errors})
            return

        await call_next()


def validated_body(schema: Mapping[str, FieldRule | Mapping[str, Any]]):
    """FastAPI dependency factory validating the JSON body against ``schema``.

    Usage:
        @router.post("/posts")
        async def create(payload: dict = Depends(validated_body(POST_SCHEMA))):
            ...

    Raises:
        ValidationAppError: 400 with ``details["errors"]`` holding the field map.
    """
    rules = coerce_schema(schema)

    async def dependency(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationAppError(code="invalid_body", message="Validation error")

        errors = validate_payload(rules, payload)
        if errors:
            raise ValidationAppError(
                code="validation_failed",
                message="Validation failed",
                details={"errors": errors},
            )
        return payload

    return dependency
