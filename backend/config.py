# backend/config.py
# Environment-aware configuration for the Lokalqy backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration (JWT_SECRET has no default, see get_jwt_secret)
JWT_SECRET = os.environ.get("JWT_SECRET", "").strip()
ALGORITHM = "HS256"

# Token lifetime
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))

# Password hashing cost
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

# Database configuration
DB_URL = os.environ.get("DB_URL", "mongodb://localhost:27017").strip()
DB_NAME = os.environ.get("DB_NAME", "lokalqy").strip()

# Image storage (Cloudinary)
CLOUD_NAME = os.environ.get("CLOUD_NAME", "").strip()
API_KEY = os.environ.get("API_KEY", "").strip()
API_SECRET = os.environ.get("API_SECRET", "").strip()
IMAGE_FOLDER = os.environ.get("IMAGE_FOLDER", "Lokalqy").strip()
ALLOWED_IMAGE_FORMATS = ("jpg", "jpeg", "png", "gif", "webp")

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())


def get_jwt_secret() -> str:
    """Return the JWT signing secret, failing loudly when it is not configured."""
    if not JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not defined in the environment")
    return JWT_SECRET


print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {DB_NAME} (MongoDB)")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
print(f"[CONFIG] JWT secret: {'set' if JWT_SECRET else 'MISSING'}")
print(f"[CONFIG] Image storage: {'Cloudinary' if CLOUD_NAME else 'not configured'}")
