"""
Unit tests for rule registries and builtin rules.

Tests cover:
- Registration, lookup and replacement
- Sync and async rule functions
- Unknown rule errors
- Builtin sanitizer transforms
- Builtin validator checks
"""

import pytest

from entitydb.errors import (
    UnexpectedFieldValueError,
    UnknownSanitizerError,
    UnknownValidatorError,
    ValidationFailedError,
)
from entitydb.rules import (
    BUILTIN_SANITIZERS,
    BUILTIN_VALIDATORS,
    SanitizerRegistry,
    ValidatorRegistry,
    default_sanitizers,
    default_validators,
)


class TestSanitizerRegistry:
    """Tests for SanitizerRegistry."""

    @pytest.mark.asyncio
    async def test_sanitize_returns_original_and_new(self):
        registry = SanitizerRegistry()
        registry.register("upper", lambda value, options: value.upper())

        assert await registry.sanitize("upper", "abc") == ("abc", "ABC")

    @pytest.mark.asyncio
    async def test_async_rule(self):
        """Coroutine rules are awaited."""
        registry = SanitizerRegistry()

        async def double(value, options):
            return value * 2

        registry.register("double", double)

        assert await registry.sanitize("double", 2) == (2, 4)

    @pytest.mark.asyncio
    async def test_options_are_passed(self):
        registry = SanitizerRegistry()
        registry.register("suffix", lambda value, options: value + options["suffix"])

        _, value = await registry.sanitize("suffix", "a", {"suffix": "-b"})

        assert value == "a-b"

    @pytest.mark.asyncio
    async def test_unknown_rule(self):
        registry = SanitizerRegistry()

        with pytest.raises(UnknownSanitizerError) as exc_info:
            await registry.sanitize("missing", "x")

        assert exc_info.value.rule == "missing"
        assert exc_info.value.code == "UNKNOWN_RULE"

    def test_registered_and_names(self):
        registry = SanitizerRegistry()
        registry.register("b", lambda value, options: value)
        registry.register("a", lambda value, options: value)

        assert registry.registered("a")
        assert not registry.registered("c")
        assert registry.names() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_register_replaces(self, caplog):
        """Registering an existing name replaces it with a warning."""
        registry = SanitizerRegistry()
        registry.register("rule", lambda value, options: 1)
        registry.register("rule", lambda value, options: 2)

        assert await registry.sanitize("rule", None) == (None, 2)
        assert "Replacing registered sanitizer 'rule'" in caplog.text


class TestValidatorRegistry:
    """Tests for ValidatorRegistry."""

    @pytest.mark.asyncio
    async def test_validate_returns_value(self):
        registry = ValidatorRegistry()
        registry.register("anything", lambda value, options: None)

        assert await registry.validate("anything", 5) == 5

    @pytest.mark.asyncio
    async def test_failure_propagates(self):
        registry = ValidatorRegistry()

        def reject(value, options):
            raise ValidationFailedError("reject", "always")

        registry.register("reject", reject)

        with pytest.raises(ValidationFailedError):
            await registry.validate("reject", 5)

    @pytest.mark.asyncio
    async def test_unknown_rule(self):
        with pytest.raises(UnknownValidatorError):
            await ValidatorRegistry().validate("missing", 1)


class TestBuiltinSanitizers:
    """Tests for builtin sanitizers."""

    @pytest.fixture
    def sanitizers(self):
        return default_sanitizers()

    def test_all_builtins_registered(self, sanitizers):
        assert sanitizers.names() == sorted(BUILTIN_SANITIZERS)

    @pytest.mark.asyncio
    async def test_trim(self, sanitizers):
        assert await sanitizers.sanitize("trim", "  a b  ") == ("  a b  ", "a b")
        assert await sanitizers.sanitize("trim", None) == (None, None)

    @pytest.mark.asyncio
    async def test_trim_rejects_non_strings(self, sanitizers):
        with pytest.raises(UnexpectedFieldValueError):
            await sanitizers.sanitize("trim", 5)

    @pytest.mark.asyncio
    async def test_case(self, sanitizers):
        assert (await sanitizers.sanitize("lowercase", "AbC"))[1] == "abc"
        assert (await sanitizers.sanitize("uppercase", "AbC"))[1] == "ABC"

    @pytest.mark.asyncio
    async def test_machine_name_slugifies(self, sanitizers):
        _, value = await sanitizers.sanitize("machine-name", "  My Great Title! ")
        assert value == "my-great-title"

    @pytest.mark.asyncio
    async def test_numbers(self, sanitizers):
        assert (await sanitizers.sanitize("integer", "42"))[1] == 42
        assert (await sanitizers.sanitize("integer", "4.7"))[1] == 4
        assert (await sanitizers.sanitize("float", "1.5"))[1] == 1.5

    @pytest.mark.asyncio
    async def test_numbers_reject_garbage(self, sanitizers):
        with pytest.raises(UnexpectedFieldValueError):
            await sanitizers.sanitize("integer", "abc")
        with pytest.raises(UnexpectedFieldValueError):
            await sanitizers.sanitize("float", True)

    @pytest.mark.asyncio
    async def test_boolean(self, sanitizers):
        assert (await sanitizers.sanitize("boolean", "yes"))[1] is True
        assert (await sanitizers.sanitize("boolean", "off"))[1] is False
        assert (await sanitizers.sanitize("boolean", 0))[1] is False
        with pytest.raises(UnexpectedFieldValueError):
            await sanitizers.sanitize("boolean", "maybe")

    @pytest.mark.asyncio
    async def test_default(self, sanitizers):
        assert (await sanitizers.sanitize("default", None, {"value": "x"}))[1] == "x"
        assert (await sanitizers.sanitize("default", "y", {"value": "x"}))[1] == "y"


class TestBuiltinValidators:
    """Tests for builtin validators."""

    @pytest.fixture
    def validators(self):
        return default_validators()

    def test_all_builtins_registered(self, validators):
        assert validators.names() == sorted(BUILTIN_VALIDATORS)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["test", "test1", "a.b_c-d", "0abc"])
    async def test_machine_name_accepts(self, validators, name):
        assert await validators.validate("machine-name", name) == name

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["Not a valid machine name", "-abc", "Test", "a b"])
    async def test_machine_name_rejects(self, validators, name):
        with pytest.raises(ValidationFailedError):
            await validators.validate("machine-name", name)

    @pytest.mark.asyncio
    async def test_required(self, validators):
        await validators.validate("required", "x")
        for empty in [None, "", [], {}]:
            with pytest.raises(ValidationFailedError):
                await validators.validate("required", empty)

    @pytest.mark.asyncio
    async def test_type_checks(self, validators):
        await validators.validate("string", "x")
        await validators.validate("number", 1.5)
        await validators.validate("boolean", False)
        await validators.validate("string", None)

        with pytest.raises(ValidationFailedError):
            await validators.validate("string", 1)
        with pytest.raises(ValidationFailedError):
            await validators.validate("number", True)
        with pytest.raises(ValidationFailedError):
            await validators.validate("boolean", "true")

    @pytest.mark.asyncio
    async def test_lengths(self, validators):
        await validators.validate("min-length", "abc", {"length": 3})
        await validators.validate("max-length", [1, 2], {"length": 2})

        with pytest.raises(ValidationFailedError):
            await validators.validate("min-length", "ab", {"length": 3})
        with pytest.raises(ValidationFailedError):
            await validators.validate("max-length", [1, 2, 3], {"length": 2})
        with pytest.raises(UnexpectedFieldValueError):
            await validators.validate("min-length", 5, {"length": 1})

    @pytest.mark.asyncio
    async def test_regex(self, validators):
        await validators.validate("regex", "abc123", {"pattern": r"\d+$"})
        with pytest.raises(ValidationFailedError):
            await validators.validate("regex", "abc", {"pattern": r"\d+$"})

    @pytest.mark.asyncio
    async def test_in(self, validators):
        await validators.validate("in", "draft", {"values": ["draft", "published"]})
        with pytest.raises(ValidationFailedError):
            await validators.validate("in", "archived", {"values": ["draft", "published"]})
