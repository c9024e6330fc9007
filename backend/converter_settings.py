# backend/converter_settings.py

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Default allowed origins for local development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3001",
]


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConverterConfig(BaseModel):
    """Runtime configuration of the converter agent"""
    conversion_master_path: Path = ROOT_DIR / "conversion-master.json"
    data_directory: Path = ROOT_DIR / "data"
    log_directory: Path = ROOT_DIR / "logs"
    enable_webhook: bool = True
    webhook_port: int = Field(default=3000, gt=0, lt=65536)
    enable_file_watcher: bool = True
    watch_interval_seconds: float = Field(default=2.0, gt=0)
    log_level: str = "info"
    cors_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "ConverterConfig":
        """Build config from environment variables (backend/.env is loaded on import)"""
        defaults = cls()

        cors_origins_env = os.environ.get('CORS_ORIGINS', '')
        if cors_origins_env:
            cors_origins = [origin.strip() for origin in cors_origins_env.split(',') if origin.strip()]
        else:
            cors_origins = defaults.cors_origins

        return cls(
            conversion_master_path=os.environ.get('CONVERSION_MASTER_PATH', defaults.conversion_master_path),
            data_directory=os.environ.get('DATA_DIRECTORY', defaults.data_directory),
            log_directory=os.environ.get('LOG_DIRECTORY', defaults.log_directory),
            enable_webhook=_env_flag('ENABLE_WEBHOOK', defaults.enable_webhook),
            webhook_port=int(os.environ.get('PORT', defaults.webhook_port)),
            enable_file_watcher=_env_flag('ENABLE_FILE_WATCHER', defaults.enable_file_watcher),
            watch_interval_seconds=float(os.environ.get('WATCH_INTERVAL_SECONDS', defaults.watch_interval_seconds)),
            log_level=os.environ.get('LOG_LEVEL', defaults.log_level),
            cors_origins=cors_origins,
        )


def setup_logging(config: ConverterConfig) -> Optional[Path]:
    """
    Console + daily file logging (logs/converter_YYYY-MM-DD.log).

    Does nothing if the root logger is already configured.
    """
    root = logging.getLogger()
    if root.handlers:
        return None

    config.log_directory.mkdir(parents=True, exist_ok=True)
    log_file = config.log_directory / f"converter_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.log"

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding="utf-8"),
        ]
    )
    return log_file
