import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from utils.logging import get_logger

# Load environment variables
load_dotenv()

logger = get_logger(__name__)

MAX_FILE_SIZE = 100 * 1024 * 1024  # 100 MiB


class Settings(BaseModel):
    base_url: str = "http://localhost:8080"
    api_token: Optional[str] = None
    http_timeout: float = 30.0
    download_dir: str = "./data/downloads"
    max_file_size: int = MAX_FILE_SIZE
    poll_initial_ms: int = 1000
    poll_max_ms: int = 30000
    poll_backoff: float = 1.5
    poll_grace: int = 5  # polls before the interval starts growing

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment (and a .env file if present)."""
        settings = cls(
            base_url=os.environ.get("IMPORT_API_BASE_URL", cls.model_fields["base_url"].default),
            api_token=os.environ.get("IMPORT_API_TOKEN") or None,
            http_timeout=float(os.environ.get("IMPORT_HTTP_TIMEOUT", 30)),
            download_dir=os.environ.get("IMPORT_DOWNLOAD_DIR", cls.model_fields["download_dir"].default),
            max_file_size=int(os.environ.get("IMPORT_MAX_FILE_SIZE", MAX_FILE_SIZE)),
            poll_initial_ms=int(os.environ.get("IMPORT_POLL_INITIAL_MS", 1000)),
            poll_max_ms=int(os.environ.get("IMPORT_POLL_MAX_MS", 30000)),
            poll_backoff=float(os.environ.get("IMPORT_POLL_BACKOFF", 1.5)),
            poll_grace=int(os.environ.get("IMPORT_POLL_GRACE", 5)),
        )
        logger.info(f"Import API configured at {settings.base_url}")
        return settings
