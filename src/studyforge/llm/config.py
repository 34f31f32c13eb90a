from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import InvalidCredentialError, UnsupportedProviderError
from .types import API_KEY_PATTERN, ProviderConfig


@dataclass(frozen=True)
class ProviderFamily:
    name: str
    key_prefix: str
    base_url: str
    default_model: str


PROVIDER_FAMILIES: dict[str, ProviderFamily] = {
    "openai": ProviderFamily(
        name="openai",
        key_prefix="sk-",
        base_url="https://api.openai.com/v1",
        default_model="gpt-3.5-turbo",
    ),
    "deepseek": ProviderFamily(
        name="deepseek",
        key_prefix="ds-",
        base_url="https://api.deepseek.com/v1",
        default_model="deepseek-chat",
    ),
}


def validate_api_key(api_key: str) -> bool:
    return bool(API_KEY_PATTERN.fullmatch(api_key))


def infer_provider(api_key: str) -> str:
    """Pick the provider family whose credential prefix matches the key."""

    for family in PROVIDER_FAMILIES.values():
        if api_key.startswith(family.key_prefix):
            return family.name
    raise InvalidCredentialError("API key does not match any known provider prefix.")


def build_provider_config(
    api_key: str,
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
) -> ProviderConfig:
    api_key = api_key.strip()
    if not validate_api_key(api_key):
        raise InvalidCredentialError("Invalid API key format.")

    name = (provider or infer_provider(api_key)).strip().lower()
    family = PROVIDER_FAMILIES.get(name)
    if family is None:
        raise UnsupportedProviderError(f"Unsupported provider '{provider}'.")

    return ProviderConfig(
        provider=family.name,
        base_url=base_url or family.base_url,
        model=model or family.default_model,
        api_key=api_key,
    )
