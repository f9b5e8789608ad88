"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _csv_set(value: str) -> set:
    return {item.strip() for item in value.split(',') if item.strip()}


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'catalog')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'catalog')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'catalog')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'
    DB_STATEMENT_TIMEOUT_MS = int(os.getenv('DB_STATEMENT_TIMEOUT_MS', '5000'))

    # Local image storage (served under UPLOAD_URL_PREFIX)
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    UPLOAD_NAMESPACE = os.getenv('UPLOAD_NAMESPACE', 'products')
    UPLOAD_URL_PREFIX = os.getenv('UPLOAD_URL_PREFIX', '/uploads')
    UPLOAD_WRITE_TIMEOUT = float(os.getenv('UPLOAD_WRITE_TIMEOUT', '10'))  # seconds
    IMAGE_DELETE_WORKERS = int(os.getenv('IMAGE_DELETE_WORKERS', '4'))

    # Upload constraints
    MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 5 * 1024 * 1024))  # 5MB per file
    MAX_IMAGES_PER_PRODUCT = int(os.getenv('MAX_IMAGES_PER_PRODUCT', '5'))
    ALLOWED_MIME_TYPES = _csv_set(os.getenv(
        'ALLOWED_MIME_TYPES',
        'image/jpeg,image/png,image/gif,image/webp'
    ))
    # Whole multipart request: every image at max size plus form fields
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE * MAX_IMAGES_PER_PRODUCT + 1024 * 1024

    # Catalog behaviour
    PRODUCT_DELETE_POLICY = os.getenv('PRODUCT_DELETE_POLICY', 'hard')  # 'hard' | 'soft'
    DEFAULT_PAGE_SIZE = int(os.getenv('DEFAULT_PAGE_SIZE', '10'))
    MAX_PAGE_SIZE = int(os.getenv('MAX_PAGE_SIZE', '100'))

    # Admin gate for mutating routes (disabled when unset)
    ADMIN_API_TOKEN = os.getenv('ADMIN_API_TOKEN')
