from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "Idento Kiosk"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Local storage for kiosk settings
    DATABASE_URL: str = "sqlite:///./kiosk.db"
    DEVICE_ID: str = "default"

    # Backend REST API
    BACKEND_URL: str = "http://localhost:8008"
    BACKEND_TOKEN: Optional[str] = None
    HTTP_TIMEOUT: float = 10.0

    # Printer/scanner agent
    AGENT_URL: str = "http://localhost:12345"
    AGENT_TIMEOUT: float = 5.0

    # Check-in screen
    RESULT_AUTO_CLOSE_SECONDS: float = 4.0
    SCANNER_POLL_INTERVAL: float = 0.5
    SCANNER_TEST_TIMEOUT: float = 30.0
    CAMERA_INDEX: int = 0
    CAMERA_FRAME_INTERVAL: float = 0.1

    # Badge printing
    ZPL_SOURCE: str = "server"  # "server" uses /badge-zpl, "local" renders here
    FONT_DIR: Optional[str] = None
    FALLBACK_FONT: str = "DejaVuSans.ttf"

    # Logging
    LOG_FILE: Optional[str] = "kiosk.log"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
