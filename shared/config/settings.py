"""Application settings and configuration management."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CUSTOM_FIELD_RETURN_TYPES = ("nested-object", "json-string", "flattened")


class Settings(BaseSettings):
    """Importer settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="TabularImporter", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Parsing limits
    max_rows: int = Field(default=1000, alias="IMPORTER_MAX_ROWS")
    max_file_size_bytes: int = Field(default=2 * 1024 * 1024, alias="IMPORTER_MAX_FILE_SIZE")
    chunk_size: int = Field(default=500, alias="IMPORTER_CHUNK_SIZE")
    show_empty_fields: bool = Field(default=True, alias="IMPORTER_SHOW_EMPTY_FIELDS")

    # Custom (pass-through) columns
    enable_custom_fields: bool = Field(default=False, alias="IMPORTER_ENABLE_CUSTOM_FIELDS")
    custom_field_return_type: str = Field(
        default="nested-object", alias="IMPORTER_CUSTOM_FIELD_RETURN_TYPE"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("custom_field_return_type")
    @classmethod
    def validate_custom_field_return_type(cls, v: str) -> str:
        """Validate the custom field packaging policy."""
        v = v.strip().lower()
        if v not in CUSTOM_FIELD_RETURN_TYPES:
            raise ValueError(
                f"Custom field return type must be one of: {list(CUSTOM_FIELD_RETURN_TYPES)}"
            )
        return v

    @field_validator("max_rows", "max_file_size_bytes", "chunk_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must be positive."""
        if v <= 0:
            raise ValueError("Limits must be positive integers")
        return v


# Global settings instance
settings = Settings()
