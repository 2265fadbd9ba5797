import tempfile
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MODLENS_",
        extra="ignore",
    )

    nexus_api_key: str = ""
    work_dir: Path = Path("")
    max_concurrency: int = 4
    max_download_bytes: int = 2 * 1024 * 1024 * 1024
    download_timeout: float = 300.0
    include_content_hashes: bool = False
    max_header_record_bytes: int = 16 * 1024 * 1024

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        if self.work_dir == Path(""):
            self.work_dir = Path(tempfile.gettempdir())
        if self.max_concurrency < 1:
            self.max_concurrency = 1
        return self


settings = Settings()
