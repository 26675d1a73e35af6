from ai.providers.base import AIProvider
from ai.providers.google import GoogleProvider

PROVIDERS: dict[str, type[AIProvider]] = {
    "google": GoogleProvider,
}

# Substring a configured model id must contain to be sent to that provider.
MODEL_FAMILIES = {
    "google": "gemini",
}


def get_provider(
    provider_name: str,
    api_key: str,
    model: str | None = None,
    timeout_seconds: float = 30,
) -> AIProvider:
    cls = PROVIDERS.get(provider_name)
    if not cls:
        raise ValueError(f"Unknown provider: {provider_name}")

    family = MODEL_FAMILIES.get(provider_name, "")
    requested = (model or "").strip()
    # Models from another vendor fall back to the provider default.
    safe_model = requested if requested and family in requested.lower() else None
    return cls(api_key=api_key, model=safe_model, timeout_seconds=timeout_seconds)
