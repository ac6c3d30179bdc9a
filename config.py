from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Lending Engine API"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3005

    database_url: str = "sqlite+aiosqlite:///./lending_engine.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    public_base_url: str = "http://localhost:3005"

    # Object storage (local filesystem backend with signed URLs)
    storage_dir: str = "./storage"
    storage_signing_secret: str = "change-me"
    presigned_url_ttl_seconds: int = 4 * 60 * 60

    # Uploads
    max_upload_bytes: int = 25 * 1024 * 1024
    allowed_mime_types: str = "application/pdf,image/png,image/jpeg,image/tiff"

    # OCR provider
    openai_api_key: str = ""
    ocr_model: str = "gpt-4o-mini"
    ocr_timeout_seconds: float = 60.0

    # E-sign provider
    signnow_base_url: str = "https://api.signnow.com"
    signnow_api_token: str = ""
    signnow_template_id: str = ""
    esign_timeout_seconds: float = 30.0
    signing_job_max_seconds: int = 300

    # Retry policy for external calls
    external_max_attempts: int = 3
    external_backoff_seconds: float = 1.0

    # Banking analysis tuning
    weight_cash_flow: float = 0.35
    weight_balance_stability: float = 0.25
    weight_nsf: float = 0.25
    weight_revenue_consistency: float = 0.15
    nsf_penalty: float = 25.0
    average_balance_floor: float = 1_000.0
    parse_min_coverage: float = 0.5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _is_sqlite: bool = PrivateAttr(default=False)
    _is_postgresql: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: object) -> None:
        _scheme = self.database_url.split(":")[0].lower()
        object.__setattr__(self, "_is_sqlite", "sqlite" in _scheme)
        object.__setattr__(self, "_is_postgresql", "postgresql" in _scheme)

    @property
    def is_sqlite(self) -> bool:
        return self._is_sqlite

    @property
    def is_postgresql(self) -> bool:
        return self._is_postgresql

    @property
    def allowed_mime_type_set(self) -> set[str]:
        return {m.strip().lower() for m in self.allowed_mime_types.split(",") if m.strip()}


settings = Settings()
