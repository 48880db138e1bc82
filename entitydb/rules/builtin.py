"""
Builtin sanitizer and validator rules.

Sanitizers transform a value and return the result. Validators return
nothing and raise a RuleError subclass when the value is rejected:
- ValidationFailedError for values of the right shape that fail the check
- UnexpectedFieldValueError for values of a shape the rule cannot handle

None is passed through untouched by every sanitizer and accepted by every
validator except "required".
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from ..errors import UnexpectedFieldValueError, ValidationFailedError
from .registry import SanitizerRegistry, ValidatorRegistry

MACHINE_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")
_SLUG_SEPARATORS = re.compile(r"[^a-z0-9_-]+")

_TRUE_STRINGS = {"1", "true", "yes", "on", "y"}
_FALSE_STRINGS = {"0", "false", "no", "off", "n", ""}


# Sanitizers


def sanitize_trim(value: Any, options: Dict[str, Any]) -> Any:
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnexpectedFieldValueError("trim", value)
    chars: Optional[str] = options.get("chars")
    return value.strip(chars)


def sanitize_lowercase(value: Any, options: Dict[str, Any]) -> Any:
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnexpectedFieldValueError("lowercase", value)
    return value.lower()


def sanitize_uppercase(value: Any, options: Dict[str, Any]) -> Any:
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnexpectedFieldValueError("uppercase", value)
    return value.upper()


def sanitize_machine_name(value: Any, options: Dict[str, Any]) -> Any:
    """Slugify a string into a valid machine name ("My Title!" -> "my-title")."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnexpectedFieldValueError("machine-name", value)
    return _SLUG_SEPARATORS.sub("-", value.strip().lower()).strip("-")


def sanitize_integer(value: Any, options: Dict[str, Any]) -> Any:
    if value is None or (isinstance(value, int) and not isinstance(value, bool)):
        return value
    try:
        return int(float(value)) if isinstance(value, (str, float)) else int(value)
    except (TypeError, ValueError):
        raise UnexpectedFieldValueError("integer", value)


def sanitize_float(value: Any, options: Dict[str, Any]) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        raise UnexpectedFieldValueError("float", value)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise UnexpectedFieldValueError("float", value)


def sanitize_boolean(value: Any, options: Dict[str, Any]) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise UnexpectedFieldValueError("boolean", value)


def sanitize_default(value: Any, options: Dict[str, Any]) -> Any:
    return options.get("value") if value is None else value


# Validators


def validate_machine_name(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise UnexpectedFieldValueError("machine-name", value)
    if not MACHINE_NAME_PATTERN.match(value):
        raise ValidationFailedError(
            "machine-name",
            f"'{value}' may only contain lowercase letters, digits, '.', '_' and '-'",
        )


def validate_required(value: Any, options: Dict[str, Any]) -> None:
    if value is None or value == "" or (isinstance(value, (list, dict)) and not value):
        raise ValidationFailedError("required", "a value is required")


def validate_string(value: Any, options: Dict[str, Any]) -> None:
    if value is not None and not isinstance(value, str):
        raise ValidationFailedError("string", f"must be a string, got {type(value).__name__}")


def validate_number(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationFailedError("number", f"must be a number, got {type(value).__name__}")


def validate_boolean(value: Any, options: Dict[str, Any]) -> None:
    if value is not None and not isinstance(value, bool):
        raise ValidationFailedError("boolean", f"must be a boolean, got {type(value).__name__}")


def _length(rule: str, value: Any) -> int:
    if not hasattr(value, "__len__"):
        raise UnexpectedFieldValueError(rule, value)
    return len(value)


def validate_min_length(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    minimum = int(options.get("length", 0))
    if _length("min-length", value) < minimum:
        raise ValidationFailedError("min-length", f"must have at least {minimum} items")


def validate_max_length(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    maximum = int(options.get("length", 0))
    if _length("max-length", value) > maximum:
        raise ValidationFailedError("max-length", f"must have at most {maximum} items")


def validate_regex(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise UnexpectedFieldValueError("regex", value)
    pattern = options.get("pattern", "")
    if not re.search(pattern, value):
        raise ValidationFailedError("regex", f"'{value}' does not match '{pattern}'")


def validate_in(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    allowed = options.get("values", [])
    if value not in allowed:
        raise ValidationFailedError("in", f"must be one of {list(allowed)}, got {value!r}")


BUILTIN_SANITIZERS = {
    "trim": sanitize_trim,
    "lowercase": sanitize_lowercase,
    "uppercase": sanitize_uppercase,
    "machine-name": sanitize_machine_name,
    "integer": sanitize_integer,
    "float": sanitize_float,
    "boolean": sanitize_boolean,
    "default": sanitize_default,
}

BUILTIN_VALIDATORS = {
    "machine-name": validate_machine_name,
    "required": validate_required,
    "string": validate_string,
    "number": validate_number,
    "boolean": validate_boolean,
    "min-length": validate_min_length,
    "max-length": validate_max_length,
    "regex": validate_regex,
    "in": validate_in,
}


def default_sanitizers() -> SanitizerRegistry:
    """Create a sanitizer registry preloaded with the builtin rules."""
    registry = SanitizerRegistry()
    for name, fn in BUILTIN_SANITIZERS.items():
        registry.register(name, fn)
    return registry


def default_validators() -> ValidatorRegistry:
    """Create a validator registry preloaded with the builtin rules."""
    registry = ValidatorRegistry()
    for name, fn in BUILTIN_VALIDATORS.items():
        registry.register(name, fn)
    return registry
