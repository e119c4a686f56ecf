"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    admin_token: str = Field(default="")

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # SSH credentials (password wins when both are set)
    ssh_password: str = Field(default="")
    ssh_private_key: str = Field(default="")
    ssh_private_key_passphrase: str | None = None
    ssh_port: int = 22
    ssh_connect_timeout: float = Field(default=30.0, ge=10.0, le=30.0)

    # Local build
    project_root: str = "."
    build_command: str = "npm run build"
    build_output_dir: str = "dist"
    package_manifests: list[str] = Field(
        default_factory=lambda: ["package.json", "package-lock.json"]
    )
    local_archive_path: str = "/tmp/vpsdeploy-deployment.tar.gz"

    # Target application
    app_name: str = "memopyk"
    app_port: int = 3000
    app_entrypoint: str = "dist/index.js"
    default_deploy_path: str = "/var/www/memopyk"
    install_command: str = "npm ci --production"
    acme_email: str | None = None  # Defaults to admin@<domain>

    # Secrets provisioned into the remote environment file
    database_url: str = Field(default="")
    supabase_url: str = Field(default="")
    supabase_service_key: str = Field(default="")
    supabase_anon_key: str = Field(default="")

    # Deployment history
    history_db_path: str = "data/deployment_history.db"

    # Optional: Coolify
    coolify_api_url: str | None = None
    coolify_api_token: str = Field(default="")
    coolify_app_uuid: str | None = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "vpsdeploy.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    def remote_environment(self) -> dict[str, str]:
        """Key/value pairs written to the remote application's .env file."""
        return {
            "DATABASE_URL": self.database_url,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_KEY": self.supabase_service_key,
            "SUPABASE_ANON_KEY": self.supabase_anon_key,
            "NODE_ENV": "production",
            "PORT": str(self.app_port),
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
