from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="llm-relay")
    app_version: str = Field(default="0.1.0")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Observability
    otel_exporter_otlp_endpoint: str = Field(default="http://jaeger:4318")
    otel_service_name: str = Field(default="llm-relay")
    log_level: str = Field(default="INFO")

    # Backend credentials (SecretStr)
    gemini_api_key: SecretStr | None = Field(default=None)
    default_model: str = Field(default="gemini-2.5-flash")

    # LLM call behaviour
    llm_timeout: int = Field(default=60)
    llm_max_retries: int = Field(default=1)


settings = Settings()
