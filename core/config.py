from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    API_KEY: Optional[str] = None
    PROVIDER: str = "openrouter"
    MODEL_NAME: str = "gpt-3.5-turbo"
    MAX_TOKENS: int = 2000
    TEMPERATURE: float = 0.7
    GATEWAY_TIMEOUT: float = 60.0
    LOG_LEVEL: str = "INFO"
    RATE_LIMIT_CALLS: int = 10
    RATE_LIMIT_PERIOD: int = 60

    # Loop budget
    MAX_STEPS: int = 8
    TURN_DEADLINE: Optional[float] = 300.0

    # Web search
    GOOGLE_API_KEY: Optional[str] = None
    GOOGLE_SEARCH_ENGINE_ID: Optional[str] = None
    SEARCH_URL: str = "https://www.googleapis.com/customsearch/v1"
    SEARCH_MAX_RESULTS: int = 5
    SEARCH_TIMEOUT: float = 15.0

    # Proxied calls
    PROXY_BASE_URL: str = "https://aipipe.org"
    PROXY_TOKEN: Optional[str] = None
    PROXY_TIMEOUT: float = 30.0

    # Sandboxes
    SANDBOX_A_TIMEOUT: float = 5.0
    SANDBOX_B_TIMEOUT: float = 10.0
    SANDBOX_B_KERNEL: str = "python3"
    # Snippets get each module's whole public API: no file, socket or
    # by-name attribute access (pandas, numpy, operator, string).
    SANDBOX_B_ALLOWED_MODULES: List[str] = [
        "math", "cmath", "statistics", "random", "decimal", "fractions",
        "datetime", "time", "calendar", "json", "re", "textwrap",
        "collections", "itertools", "functools", "heapq", "bisect",
    ]

    ENABLED_TOOLS: List[str] = [
        "search", "proxy_call", "execute_sandbox_a", "execute_sandbox_b", "generate_code",
    ]
    SYSTEM_PROMPT: Optional[str] = None

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
