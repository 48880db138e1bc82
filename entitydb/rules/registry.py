"""
Sanitizer and validator registries for EntityDB.

A registry maps a rule name to a callable. Schemas store only rule names
and options; the registries are consulted whenever a field value is
sanitized or validated.

Rule calling contract:
    - A rule is called as fn(value, options) and may be sync or async
    - A sanitizer returns the new value
    - A validator returns nothing and raises a RuleError on failure

Invariants:
    - Rule names are unique within a registry
    - Looking up an unknown rule raises UnknownSanitizerError or
      UnknownValidatorError, never KeyError
    - Rule failures propagate unchanged to the caller

Example:
    >>> sanitizers = SanitizerRegistry()
    >>> sanitizers.register("trim", lambda value, options: value.strip())
    >>> await sanitizers.sanitize("trim", "  hello ")
    ('  hello ', 'hello')
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, Union

from ..errors import UnknownRuleError, UnknownSanitizerError, UnknownValidatorError

logger = logging.getLogger(__name__)

RuleOptions = Dict[str, Any]
RuleFunction = Callable[[Any, RuleOptions], Union[Any, Awaitable[Any]]]


class _RuleRegistry:
    """Name-indexed rule storage shared by both registries."""

    kind = "rule"
    unknown_error: Type[UnknownRuleError] = UnknownRuleError

    def __init__(self) -> None:
        self._rules: Dict[str, RuleFunction] = {}

    def register(self, name: str, fn: RuleFunction) -> None:
        """Register a rule, replacing any rule with the same name.

        Args:
            name: Rule name used in schema definitions
            fn: Rule callable
        """
        if name in self._rules:
            logger.warning(f"Replacing registered {self.kind} '{name}'")
        self._rules[name] = fn
        logger.debug(f"Registered {self.kind}: {name}")

    def registered(self, name: str) -> bool:
        """Whether a rule with this name exists."""
        return name in self._rules

    def names(self) -> List[str]:
        """Get the sorted list of registered rule names."""
        return sorted(self._rules)

    async def _invoke(self, name: str, value: Any, options: Optional[RuleOptions]) -> Any:
        fn = self._rules.get(name)
        if fn is None:
            raise self.unknown_error(name)

        result = fn(value, options or {})
        if inspect.isawaitable(result):
            result = await result
        return result


class SanitizerRegistry(_RuleRegistry):
    """Registry of value transforms."""

    kind = "sanitizer"
    unknown_error = UnknownSanitizerError

    async def sanitize(
        self,
        rule: str,
        value: Any,
        options: Optional[RuleOptions] = None,
    ) -> Tuple[Any, Any]:
        """Run a sanitizer.

        Args:
            rule: Sanitizer name
            value: Value to transform
            options: Rule options

        Returns:
            Tuple of (original_value, new_value)

        Raises:
            UnknownSanitizerError: If the rule is not registered
            RuleError: If the rule rejects the value
        """
        return value, await self._invoke(rule, value, options)


class ValidatorRegistry(_RuleRegistry):
    """Registry of value checks."""

    kind = "validator"
    unknown_error = UnknownValidatorError

    async def validate(
        self,
        rule: str,
        value: Any,
        options: Optional[RuleOptions] = None,
    ) -> Any:
        """Run a validator.

        Args:
            rule: Validator name
            value: Value to check
            options: Rule options

        Returns:
            The validated value

        Raises:
            UnknownValidatorError: If the rule is not registered
            RuleError: If the value fails the check
        """
        await self._invoke(rule, value, options)
        return value
