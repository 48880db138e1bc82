"""
Error types for EntityDB.

This module defines every exception raised by the persistence lifecycle,
the schema engine, the entity engine and the rule registries:
- EntityDbError: Base exception
- Lifecycle errors: missing/duplicate machine names, records not found
- Schema errors: unknown fields, unknown field types, duplicate fields
- Rule errors: unknown rules and rule failures
- Store errors: backend and query failures

Invariants:
    - All errors inherit from EntityDbError
    - Every error carries a stable code and a details dict
    - Errors are raised unchanged through every pipeline (never wrapped)
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EntityDbError(Exception):
    """Base exception for all EntityDB errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ENTITYDB_ERROR"
        self.details = details or {}


class MissingMachineNameError(EntityDbError):
    """A record was saved, loaded or deleted without a machine name."""

    def __init__(self, message: str = "A machine name is required") -> None:
        super().__init__(message, code="MISSING_MACHINE_NAME")


class MachineNameExistsError(EntityDbError):
    """The machine name is already used by another live record.

    Attributes:
        machine_name: The machine name causing the error
    """

    def __init__(self, machine_name: str) -> None:
        super().__init__(
            f"Machine name '{machine_name}' is already in use",
            code="MACHINE_NAME_EXISTS",
            details={"machine_name": machine_name},
        )
        self.machine_name = machine_name


class CantFindEntityError(EntityDbError):
    """No document matches the machine name in the collection or the trash.

    Attributes:
        collection: The collection that was searched
        machine_name: The machine name used for the lookup
    """

    def __init__(self, collection: str, machine_name: str) -> None:
        super().__init__(
            f"Unable to find '{machine_name}' in '{collection}'",
            code="NOT_FOUND",
            details={"collection": collection, "machine_name": machine_name},
        )
        self.collection = collection
        self.machine_name = machine_name


class UnknownSchemaFieldError(EntityDbError):
    """The schema has no field with this name.

    Attributes:
        field_name: The unknown field
    """

    def __init__(self, field_name: str) -> None:
        super().__init__(
            f"Unknown schema field '{field_name}'",
            code="UNKNOWN_FIELD",
            details={"field_name": field_name},
        )
        self.field_name = field_name


class UnknownFieldTypeError(EntityDbError):
    """A field was declared with a type outside the known set.

    Attributes:
        field_name: The field being declared
        field_type: The rejected type name
    """

    def __init__(self, field_name: str, field_type: str) -> None:
        super().__init__(
            f"Unknown type '{field_type}' for field '{field_name}'",
            code="UNKNOWN_FIELD_TYPE",
            details={"field_name": field_name, "field_type": field_type},
        )
        self.field_name = field_name
        self.field_type = field_type


class SchemaFieldDefinedError(EntityDbError):
    """A field with this name is already defined on the schema."""

    def __init__(self, field_name: str) -> None:
        super().__init__(
            f"Field '{field_name}' is already defined",
            code="FIELD_DEFINED",
            details={"field_name": field_name},
        )
        self.field_name = field_name


class UnknownRuleError(EntityDbError):
    """Base for lookups of rules that were never registered.

    Attributes:
        rule: The rule name
    """

    kind = "rule"

    def __init__(self, rule: str) -> None:
        super().__init__(
            f"Unknown {self.kind} '{rule}'",
            code="UNKNOWN_RULE",
            details={"rule": rule, "kind": self.kind},
        )
        self.rule = rule


class UnknownSanitizerError(UnknownRuleError):
    """The sanitizer is not registered."""

    kind = "sanitizer"


class UnknownValidatorError(UnknownRuleError):
    """The validator is not registered."""

    kind = "validator"


class RuleError(EntityDbError):
    """Base for failures reported by a sanitizer or validator."""

    pass


class UnexpectedFieldValueError(RuleError):
    """A rule received a value whose shape it cannot process."""

    def __init__(self, rule: str, value: Any = None) -> None:
        super().__init__(
            f"Rule '{rule}' cannot process a value of type {type(value).__name__}",
            code="UNEXPECTED_VALUE",
            details={"rule": rule, "value_type": type(value).__name__},
        )
        self.rule = rule


class MissingTypeConfigError(RuleError):
    """A rule requiring a type option was invoked without one."""

    def __init__(self, rule: str) -> None:
        super().__init__(
            f"Rule '{rule}' requires a 'type' option",
            code="MISSING_TYPE_CONFIG",
            details={"rule": rule},
        )
        self.rule = rule


class InvalidEntityTypeError(RuleError):
    """A referenced entity is not of the expected type.

    Attributes:
        expected: The required entity type
        got: The type that was supplied
    """

    def __init__(self, expected: str, got: Optional[str]) -> None:
        super().__init__(
            f"Expected an entity of type '{expected}', got '{got}'",
            code="INVALID_ENTITY_TYPE",
            details={"expected": expected, "got": got},
        )
        self.expected = expected
        self.got = got


class InvalidEntityError(RuleError):
    """The value is not an entity."""

    def __init__(self, value: Any = None) -> None:
        super().__init__(
            f"Expected an entity, got {type(value).__name__}",
            code="INVALID_ENTITY",
            details={"value_type": type(value).__name__},
        )


class FailedEntityError(RuleError):
    """An entity failed one of the options of the entity validator.

    Attributes:
        option: The name of the failing option
    """

    def __init__(self, option: str) -> None:
        super().__init__(
            f"Entity failed the '{option}' check",
            code="FAILED_ENTITY",
            details={"option": option},
        )
        self.option = option


class ValidationFailedError(RuleError):
    """A builtin validator rejected a value.

    Attributes:
        rule: The rule that failed
        reason: Human-readable reason
    """

    def __init__(self, rule: str, reason: str) -> None:
        super().__init__(
            f"Validation '{rule}' failed: {reason}",
            code="VALIDATION_FAILED",
            details={"rule": rule, "reason": reason},
        )
        self.rule = rule
        self.reason = reason


class StoreError(EntityDbError):
    """The document store backend failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="STORE_ERROR")


class QueryError(StoreError):
    """A filter or sort specification could not be evaluated."""

    pass
