import os

APP_NAME = "CareerCoach"

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "careercoach")
DATABASE_TIMEOUT_MS = int(os.getenv("DATABASE_TIMEOUT_MS", "5000"))
DATABASE_RETRY_SECONDS = float(os.getenv("DATABASE_RETRY_SECONDS", "30"))
DATABASE_SOCKET_TIMEOUT_MS = int(os.getenv("DATABASE_SOCKET_TIMEOUT_MS", "45000"))

DEFAULT_JWT_SECRET = "dev-secret-change-me"
JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", str(30 * 24 * 60)))
# shared with the OAuth callback layer that verifies Google identities
OAUTH_CALLBACK_SECRET = os.getenv("OAUTH_CALLBACK_SECRET")

SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
MAIL_FROM = os.getenv("MAIL_FROM", SMTP_USER or "newsletter@careercoach.local")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
