"""Supported secret providers and the format rule each one enforces."""
from enum import Enum
from typing import NamedTuple, Union

from .exceptions import InvalidProvider, ValidationError

# Bump when a provider is added or removed.
PROVIDER_SET_VERSION = 1


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"

    def __str__(self) -> str:
        return self.value


class ProviderRule(NamedTuple):
    prefix: str
    min_length: int
    label: str


PROVIDER_RULES: dict[Provider, ProviderRule] = {
    Provider.OPENAI: ProviderRule("sk-", 20, "OpenAI"),
    Provider.ANTHROPIC: ProviderRule("sk-ant-", 20, "Anthropic"),
    Provider.GEMINI: ProviderRule("AIza", 20, "Gemini"),
}

_missing = set(Provider) - set(PROVIDER_RULES)
if _missing:
    raise RuntimeError(
        f"No validation rule for provider(s): {sorted(p.value for p in _missing)}"
    )


def provider_names() -> list[str]:
    return [p.value for p in Provider]


def parse_provider(value: Union[str, Provider]) -> Provider:
    """Return the Provider for ``value``.

    Raises:
        InvalidProvider: If ``value`` is not a member of the closed set.
    """
    if isinstance(value, Provider):
        return value
    try:
        return Provider(value)
    except ValueError:
        raise InvalidProvider(value, provider_names()) from None


def validate_secret(provider: Provider, value: object) -> str:
    """Check a plaintext secret against its provider's format rule.

    Returns:
        The validated secret.

    Raises:
        ValidationError: If the secret is empty, not a string, or does not
            match the provider's prefix and minimum length.
    """
    if not isinstance(value, str):
        raise ValidationError("API key must be a string")
    if not value:
        raise ValidationError("API key is required")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValidationError("API key must be valid UTF-8 text") from None
    rule = PROVIDER_RULES[provider]
    if not value.startswith(rule.prefix) or len(value) < rule.min_length:
        raise ValidationError(
            f'{rule.label} API key must start with "{rule.prefix}" and be at '
            f"least {rule.min_length} characters long"
        )
    return value
