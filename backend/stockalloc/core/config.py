"""
Stock Allocation Configuration
Core settings for the receiving and allocation service
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path

class Settings(BaseSettings):
    """Application settings"""

    # Application Info
    APP_NAME: str = "Stock Allocation API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./stockalloc.db"
    DATABASE_ECHO: bool = False

    # CORS
    CORS_ORIGINS: list = [
        "http://localhost:3000",  # Vite / React frontend
        "http://localhost:5173",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"

    # Document collections
    PARENT_COLLECTION: str = "proforma_invoices"
    PRODUCT_COLLECTION: str = "products"
    ORDER_COLLECTION: str = "purchase_orders"
    ALLOCATION_COLLECTION: str = "stock_allocations"
    PROJECT_COLLECTION: str = "projects"
    WAREHOUSE_COLLECTION: str = "warehouses"

    # Allocation rules
    OPEN_ORDER_STATUSES: List[str] = ["draft", "confirmed", "processing"]
    HIGH_PRIORITY_DAYS: int = 7
    MEDIUM_PRIORITY_DAYS: int = 30
    DEFAULT_WAREHOUSE_ID: str = "wh-main"
    DEFAULT_WAREHOUSE_NAME: str = "Main Warehouse"
    DEFAULT_PROJECT_ID: str = "proj-general"
    DEFAULT_PROJECT_NAME: str = "GENERAL-PROJECT"
    SYSTEM_USER: str = "SYSTEM"
    NEAR_MISS_LIMIT: int = 10

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    OPENAPI_URL: str = "/openapi.json"

    @field_validator("OPEN_ORDER_STATUSES")
    @classmethod
    def normalise_statuses(cls, v: List[str]) -> List[str]:
        """Order statuses are compared lower-case"""
        return [s.strip().lower() for s in v if s and s.strip()]

    @field_validator("MEDIUM_PRIORITY_DAYS")
    @classmethod
    def check_priority_windows(cls, v: int, info) -> int:
        """Medium window must not be shorter than the high window"""
        high = info.data.get("HIGH_PRIORITY_DAYS", 0)
        if v < high:
            raise ValueError("MEDIUM_PRIORITY_DAYS must be >= HIGH_PRIORITY_DAYS")
        return v

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def coerce_log_dir(cls, v):
        """Accept plain strings for the log directory"""
        return Path(v) if isinstance(v, str) else v

    class Config:
        env_file = ".env"
        case_sensitive = True

# Global settings instance
settings = Settings()

# Database connection string for SQLAlchemy
DATABASE_URL = settings.DATABASE_URL
