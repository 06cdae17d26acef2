import os


def _csv_env(name: str, default: str) -> set[str]:
    raw = os.environ.get(name, default)
    return {item.strip() for item in raw.split(",") if item.strip()}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///stockpilot.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Origins allowed by the CORS hook in create_app()
    CORS_ORIGINS = _csv_env("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    # Dashboard/report responses are cached until a write marks them stale
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", "300"))

    # Product images (either CLOUDINARY_URL or the three split settings)
    CLOUDINARY_URL = os.environ.get("CLOUDINARY_URL")
    CLOUDINARY_CLOUD_NAME = os.environ.get("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY = os.environ.get("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET = os.environ.get("CLOUDINARY_API_SECRET")
    CLOUDINARY_FOLDER = os.environ.get("CLOUDINARY_FOLDER", "stockpilot_products")

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "10"))
    MAX_PAGE_SIZE = 100
    EXPIRY_ALERT_DAYS = int(os.environ.get("EXPIRY_ALERT_DAYS", "30"))
    REPORT_ALERT_LIMIT = 10

    MAX_CONTENT_LENGTH = 16 * 1024 * 1024
