import logging
import sys
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    FETCH_TIMEOUT_SECONDS: float = 30.0
    FETCH_USER_AGENT: str = "SheetPulse-Analytics/1.0"
    SHARED_DOC_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    SAMPLE_SIZE: int = 20
    NUMERIC_RATIO: float = 0.7
    RECOVERY_NUMERIC_RATIO: float = 0.5
    MAX_KPI_COLUMNS: int = 8

    MAX_FORECAST_COLUMNS: int = 6
    MAX_CORRELATION_COLUMNS: int = 8
    ANOMALY_Z_THRESHOLD: float = 2.0
    ANOMALY_MIN_RELATIVE_DEVIATION: float = 0.1
    CORRELATION_THRESHOLD: float = 0.6
    FORECAST_MIN_R_SQUARED: float = 0.1
    SEASONALITY_MIN_STRENGTH: float = 0.3

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "SHEETPULSE_"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def setup_logging(log_level: str | None = None) -> None:
    """Configure stdout logging for scripts and workers embedding the pipeline."""
    level = (log_level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Reduce noise from the HTTP stack
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
