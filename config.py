import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Storage: one JSON file per entity kind lives in this directory
    data_dir: str = os.getenv("LIBRARY_DATA_DIR", "data")

    # Seed an admin account on first start so the catalog can be managed
    seed_default_admin: bool = _flag("SEED_DEFAULT_ADMIN", "True")
    seed_admin_name: str = os.getenv("SEED_ADMIN_NAME", "Head Librarian")
    seed_admin_email: str = os.getenv("SEED_ADMIN_EMAIL", "admin@library.local")

    # Open Library settings
    openlibrary_base_url: str = os.getenv("OPENLIBRARY_BASE_URL", "https://openlibrary.org")
    openlibrary_timeout: float = float(os.getenv("OPENLIBRARY_TIMEOUT", "10"))
    openlibrary_user_agent: str = os.getenv("OPENLIBRARY_USER_AGENT", "BranchLibrary/1.0 (library-admin)")
    search_result_limit: int = int(os.getenv("SEARCH_RESULT_LIMIT", "10"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Branch Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _flag("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
