import os

DB_PATH = os.environ.get("BOARD_DB_PATH", "board.db")
ALLOWED_ORIGINS = ["http://localhost:3000", "http://localhost:8080"]

# Server Configuration
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000
LOG_LEVEL = os.environ.get("BOARD_LOG_LEVEL", "INFO")

# Listing Policy
LISTING_LIMIT = 10
REPLY_PREVIEW_LIMIT = 3
TOMBSTONE_TEXT = "[deleted]"

# Validation Constants
BOARD_NAME_MIN_LENGTH = 1
BOARD_NAME_MAX_LENGTH = 100
POST_CONTENT_MIN_LENGTH = 1
POST_CONTENT_MAX_LENGTH = 50000
SECRET_MIN_LENGTH = 1
SECRET_MAX_LENGTH = 1024

# Security Settings
BCRYPT_ROUNDS = 12
ID_BYTES = 12
MAX_REQUEST_SIZE_MB = 1
GZIP_MIN_SIZE = 1000

# Storage Settings
SQLITE_BUSY_TIMEOUT = 5.0  # seconds

# HTTP Status Codes
HTTP_REQUEST_ENTITY_TOO_LARGE = 413
HTTP_INTERNAL_SERVER_ERROR = 500
