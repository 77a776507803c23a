import os
from typing import Any, Dict


class OracleSettings:
    """Typed accessors for the ``oracle`` section of the application config.

    Mirrors the explicit ``get``/``as_dict`` API of the other settings
    helpers instead of implementing the full mapping protocol.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def enabled(self) -> bool:
        return bool(self.data.get("enabled", False))

    @property
    def base_url(self) -> str | None:
        val = self.data.get("base_url")
        return str(val) if val else None

    @property
    def model_name(self) -> str:
        return str(self.data.get("model_name") or "gpt-4o-mini")

    @property
    def api_key_env(self) -> str:
        return str(self.data.get("api_key_env") or "OPENAI_API_KEY")

    @property
    def api_key(self) -> str | None:
        """Resolve the API key from the environment variable named by ``api_key_env``."""
        return os.getenv(self.api_key_env) or None

    @property
    def timeout_seconds(self) -> float:
        return float(self.data.get("timeout_seconds", 0.5))
