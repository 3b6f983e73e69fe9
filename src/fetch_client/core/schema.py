"""
Schema validation adapters.

A schema is anything the configured :class:`SchemaValidator` recognises.
The default :class:`StandardSchemaValidator` speaks a vendor-neutral
protocol: the schema exposes ``__standard_schema__`` with a callable
``validate(data)``, an integer ``version`` and a string ``vendor``.
``validate`` returns an object or mapping with either non-empty ``issues``
or a ``value``.

Example:
    >>> def positive(data):
    ...     if isinstance(data, int) and data > 0:
    ...         return ValidationResult(value=data)
    ...     return ValidationResult(issues=[{"message": "expected a positive int"}])
    >>> StandardSchemaValidator().validate(standard_schema(positive), 3)
    3
"""

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, TypeAdapter, ValidationError

from .exceptions import (
    AsyncSchemaValidationError,
    FetchClientError,
    InvalidSchemaError,
    SchemaValidationError,
    describe_error,
)

logger = logging.getLogger(__name__)

STANDARD_SCHEMA_ATTR = "__standard_schema__"


@runtime_checkable
class SchemaValidator(Protocol):
    """Adapter between the pipeline and a validation library."""

    def validate(self, schema: Any, data: Any) -> Any:
        """Return the validated value or raise SchemaValidationError."""
        ...

    def is_schema(self, value: Any) -> bool:
        """True if ``value`` is a schema this adapter understands."""
        ...


@dataclass(frozen=True)
class ValidationResult:
    """Result of a standard-protocol ``validate`` call."""

    value: Any = None
    issues: Optional[Sequence[Any]] = None


@dataclass(frozen=True)
class StandardSchemaProps:
    validate: Callable[[Any], Any]
    version: int = 1
    vendor: str = "fetch_client"


class StandardSchema:
    """Schema built from a plain validation function, see :func:`standard_schema`."""

    def __init__(self, props: StandardSchemaProps):
        self.__standard_schema__ = props

    def __repr__(self) -> str:
        props = self.__standard_schema__
        return f"<StandardSchema vendor={props.vendor!r} version={props.version}>"


def standard_schema(
    validate: Callable[[Any], Any],
    vendor: str = "fetch_client",
    version: int = 1,
) -> StandardSchema:
    """Wrap ``validate(data) -> ValidationResult | mapping`` into a protocol schema."""
    return StandardSchema(StandardSchemaProps(validate=validate, version=version, vendor=vendor))


def is_standard_schema(value: Any) -> bool:
    """Check the standard protocol shape (validate, version, vendor)."""
    if value is None:
        return False
    props = getattr(value, STANDARD_SCHEMA_ATTR, None)
    if props is None:
        return False
    version = getattr(props, "version", None)
    return (
        callable(getattr(props, "validate", None))
        and isinstance(version, int)
        and not isinstance(version, bool)
        and isinstance(getattr(props, "vendor", None), str)
    )


def _result_field(result: Any, name: str) -> Any:
    if isinstance(result, Mapping):
        return result.get(name)
    return getattr(result, name, None)


def format_issues(issues: Sequence[Any]) -> str:
    return json.dumps(list(issues), default=str, ensure_ascii=False)


class StandardSchemaValidator:
    """Default adapter for standard-protocol schemas."""

    def is_schema(self, value: Any) -> bool:
        return is_standard_schema(value)

    def validate(self, schema: Any, data: Any) -> Any:
        """
        Validate ``data`` against a standard-protocol schema.

        Raises:
            InvalidSchemaError: ``schema`` does not implement the protocol
            AsyncSchemaValidationError: ``validate`` returned an awaitable
            SchemaValidationError: ``validate`` reported issues
        """
        if not is_standard_schema(schema):
            raise InvalidSchemaError(
                "Schema must implement the standard schema protocol "
                f"({STANDARD_SCHEMA_ATTR} with validate, version and vendor)",
                schema,
            )

        result = getattr(schema, STANDARD_SCHEMA_ATTR).validate(data)

        if inspect.isawaitable(result):
            close = getattr(result, "close", None)
            if close is not None:
                close()
            raise AsyncSchemaValidationError(
                "Async schema validation is not supported in this context",
                schema,
            )

        issues = _result_field(result, "issues")
        if issues:
            raise SchemaValidationError(
                format_issues(issues), schema, data, issues=issues
            )

        return _result_field(result, "value")


class PydanticSchemaValidator:
    """
    Adapter for pydantic models and TypeAdapters.

    Standard-protocol schemas are delegated to StandardSchemaValidator, so
    both kinds can be mixed on one client.

    Example:
        >>> class User(BaseModel):
        ...     id: int
        >>> client = FetchClient(schema_validator=PydanticSchemaValidator())
        >>> response = await client.get("/users/1", schema=User)
        >>> response.data.id
        1
    """

    def __init__(self, strict: Optional[bool] = None):
        self.strict = strict
        self._standard = StandardSchemaValidator()

    def is_schema(self, value: Any) -> bool:
        if isinstance(value, TypeAdapter):
            return True
        if isinstance(value, type) and issubclass(value, BaseModel):
            return True
        return self._standard.is_schema(value)

    def validate(self, schema: Any, data: Any) -> Any:
        if self._standard.is_schema(schema):
            return self._standard.validate(schema, data)

        try:
            if isinstance(schema, TypeAdapter):
                return schema.validate_python(data, strict=self.strict)
            if isinstance(schema, type) and issubclass(schema, BaseModel):
                return schema.model_validate(data, strict=self.strict)
        except ValidationError as e:
            issues = e.errors(include_url=False)
            raise SchemaValidationError(
                format_issues(issues), schema, data, issues=issues, cause=e
            ) from e

        raise InvalidSchemaError(
            "Schema must be a pydantic model class, a TypeAdapter or a standard schema",
            schema,
        )


def validate_schema(validator: Optional[SchemaValidator], schema: Any, data: Any) -> Any:
    """
    Run ``validator`` for one decoded body.

    Errors of the client's own taxonomy propagate unchanged; anything else a
    custom adapter raises becomes SchemaValidationError.
    """
    adapter = validator if validator is not None else StandardSchemaValidator()
    try:
        return adapter.validate(schema, data)
    except FetchClientError:
        raise
    except Exception as e:
        logger.debug(f"Schema adapter {type(adapter).__name__} raised {type(e).__name__}")
        raise SchemaValidationError(
            describe_error("Schema validation failed", e), schema, data, cause=e
        ) from e
