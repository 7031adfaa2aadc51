from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

class AppSettings(BaseSettings):
    name: str = "Formloom"
    version: str = "1.0.0"

class PathSettings(BaseSettings):
    data_dir: Path = Path("./data")
    db_path: Path = Path("./data/formloom.db")
    upload_dir: Path = Path("./data/uploads")


class ImportSettings(BaseSettings):
    max_upload_mb: int = 10
    allowed_extensions: list[str] = [".xlsx", ".xls", ".csv"]
    batch_size: int = 100  # checkpoint interval for job progress
    preview_rows: int = 5
    error_preview_limit: int = 100
    detection_sample_size: int = 100
    file_cache_ttl_seconds: int = 300
    job_retention_days: int = 7

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

class SecuritySettings(BaseSettings):
    """
    Optional request guardrails. Authorization of tenants/forms happens upstream.
    """
    api_token: Optional[str] = None  # Bearer token or X-API-Key

class LoggingSettings(BaseSettings):
    log_requests: bool = True
    level: str = "INFO"

class StorageSettings(BaseSettings):
    """
    Record store selection:
    - sqlite (local/dev default)
    - firestore (cloud)
    """
    backend: str = "sqlite"  # sqlite|firestore
    firestore_project_id: Optional[str] = None
    firestore_database: str = "(default)"
    firestore_collection_prefix: str = "formloom"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    imports: ImportSettings = ImportSettings()
    security: SecuritySettings = SecuritySettings()
    logging: LoggingSettings = LoggingSettings()
    storage: StorageSettings = StorageSettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        with open(path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

settings = Settings.load()
