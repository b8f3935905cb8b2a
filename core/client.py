from openai import AsyncOpenAI
from core.config import settings

PROVIDERS = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "headers": {},
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "headers": {"X-Title": "Tool Agent"},
    },
    "aipipe": {
        "base_url": "https://aipipe.org/openrouter/v1",
        "headers": {},
    },
}

def get_client(provider: str = None, api_key: str = None):
    provider = provider or settings.PROVIDER
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")
    entry = PROVIDERS[provider]
    return AsyncOpenAI(
        api_key=api_key or settings.API_KEY,
        base_url=entry["base_url"],
        default_headers=entry["headers"] or None,
        timeout=settings.GATEWAY_TIMEOUT,
        max_retries=0,
    )
