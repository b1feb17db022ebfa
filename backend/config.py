"""Application configuration using pydantic-settings."""

from enum import Enum
from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


PRODUCTION_ENVIRONMENTS = ("production", "prod")


class ProviderMode(str, Enum):
    """Which Account Aggregator backend the app talks to.

    Selected once at startup from ``AA_PROVIDER``. ``MOCK`` is the
    development default and is refused in production; a real mode with
    missing credentials fails loudly.
    """

    FINVU = "finvu"
    FINFACTOR = "finfactor"
    MOCK = "mock"


class WebhookVerification(str, Enum):
    """Whether inbound webhook signatures are checked."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./aa_pipeline.db"

    # Account Aggregator provider selection
    AA_PROVIDER: ProviderMode = ProviderMode.MOCK
    AA_HTTP_TIMEOUT_SECONDS: float = 30.0

    # Finvu (ReBIT) API
    AA_FIU_ID: str = ""
    AA_API_BASE_URL: str = ""
    AA_CLIENT_API_KEY: str = ""
    AA_PRIVATE_KEY: str = ""
    AA_KEY_ID: str = ""
    AA_WEB_URL: str = "https://aaweb.finvu.in"

    # Finfactor V2 API
    FINFACTOR_API_BASE_URL: str = ""
    FINFACTOR_USER_ID: str = ""
    FINFACTOR_PASSWORD: str = ""
    FINFACTOR_CHANNEL_ID: str = "finsense"

    # Webhook signature verification
    AA_WEBHOOK_PUBLIC_KEY: str = ""
    AA_WEBHOOK_PUBLIC_KEY_FILE: str = ""
    AA_WEBHOOK_ALGORITHMS: str = "RS256,ES256"
    AA_WEBHOOK_VERIFICATION: WebhookVerification = WebhookVerification.ENABLED

    @field_validator("AA_PRIVATE_KEY", "AA_WEBHOOK_PUBLIC_KEY", mode="before")
    @classmethod
    def normalize_pem_newlines(cls, v: str) -> str:
        """Convert literal ``\\n`` sequences to real newlines in PEM values.

        When set via shell ``export``, ``\\n`` stays as a literal two-char
        sequence. python-dotenv already converts ``\\n`` inside double-quoted
        ``.env`` values, so this handles the shell-export case.
        """
        if isinstance(v, str) and "\\n" in v:
            v = v.replace("\\n", "\n")
        return v

    @field_validator("AA_PROVIDER", "AA_WEBHOOK_VERIFICATION", mode="before")
    @classmethod
    def lowercase_enum_values(cls, v: Any) -> Any:
        """Accept ``FINVU`` / ``Mock`` etc. for the enum-valued settings."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @property
    def webhook_algorithms(self) -> list[str]:
        """Allowed JWS algorithms for webhook signatures, in configured order."""
        return [a.strip().upper() for a in self.AA_WEBHOOK_ALGORITHMS.split(",") if a.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in PRODUCTION_ENVIRONMENTS

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    SECURITY_LOG_FILE: str = ""


settings = Settings()
