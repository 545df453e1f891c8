"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (prefixed with MCP_) or a local .env file.

Locally the defaults are enough to start the server; the weather tool needs
MCP_OPENWEATHER_API_KEY to return data.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the MCP_ prefix.
    For example, `port` reads from MCP_PORT, `openweather_api_key` reads
    from MCP_OPENWEATHER_API_KEY.
    """

    # --- Server settings ---

    # "0.0.0.0" listens on all interfaces (required inside containers).
    host: str = "0.0.0.0"
    port: int = 8080

    # Maps to Python's logging levels: "debug", "info", "warning", ...
    log_level: str = "info"

    # --- Identity provider settings ---

    # Key used to verify session tokens. Development default only.
    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # Base URL of the identity provider. When unset, the discovery document
    # uses the origin of the request that asked for it.
    auth_base_url: str | None = None

    # --- Weather API settings ---

    openweather_api_key: str = ""
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"
    weather_timeout: float = 15.0

    # --- CORS ---

    # The liberal CORS policy (any origin) is only installed for "local".
    # MCP inspectors running in a browser need it to reach the auth routes.
    cors_environment: str = "local"

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance: import this from other modules.
settings = Settings()
