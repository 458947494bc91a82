import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8000"))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "blog")

# Session tokens
JWT_SECRET = os.getenv("JWT_SECRET", "supersecret-change-me")
JWT_EXPIRE_MIN = int(os.getenv("JWT_EXPIRE_MIN", str(2 * 24 * 60)))
COOKIE_NAME = "token"
COOKIE_SECURE = ENVIRONMENT == "production"

# Credentials
PASSWORD_SCHEME = os.getenv("PASSWORD_SCHEME", "bcrypt")
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))
RESET_TOKEN_EXPIRE_MIN = int(os.getenv("RESET_TOKEN_EXPIRE_MIN", "15"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Object storage
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
STORAGE_TIMEOUT = int(os.getenv("STORAGE_TIMEOUT", "30"))
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
DEFAULT_AVATAR_URL = os.getenv(
    "DEFAULT_AVATAR_URL",
    "https://res.cloudinary.com/du9jzqlpt/image/upload/v1674647316/avatar_drzgxv.jpg",
)

# Email
SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "no-reply@localhost")
SMTP_TIMEOUT = int(os.getenv("SMTP_TIMEOUT", "10"))

# Google sign-in
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
OAUTH_TIMEOUT = int(os.getenv("OAUTH_TIMEOUT", "10"))

# AI summaries
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
AI_TIMEOUT = int(os.getenv("AI_TIMEOUT", "20"))

RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
