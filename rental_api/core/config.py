# rental_api/core/config.py
import os
import sys
import logging
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

project_root = Path(__file__).resolve().parent.parent.parent
dotenv_path = project_root / ".env"

if dotenv_path.is_file():
    logger.info(f"Loading environment variables from: {dotenv_path}")
    load_dotenv(dotenv_path=dotenv_path, override=True)
else:
    logger.debug(f".env file not found at {dotenv_path}. Relying on system environment variables.")


class InterceptHandler(logging.Handler):
    """Routes records from the standard logging module into Loguru."""
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging():
    """Configure Loguru sinks and intercept uvicorn/fastapi/starlette loggers."""
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )
    log_file_path = Path(os.getenv("LOG_FILE_PATH", "logs/rental_{time:YYYY-MM-DD}.log"))
    log_rotation = os.getenv("LOG_ROTATION", "1 day")
    log_retention = os.getenv("LOG_RETENTION", "7 days")
    log_serialize = os.getenv("LOG_SERIALIZE", "False").lower() == "true"

    logger.remove()
    logger.add(sys.stderr, level=log_level_name, format=log_format, colorize=True)

    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file_path,
            level=log_level_name,
            format=log_format,
            rotation=log_rotation,
            retention=log_retention,
            serialize=log_serialize,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            encoding="utf-8",
        )
        logger.info(f"File logging enabled at: {log_file_path}")
    except OSError as e:
        logger.error(f"Failed to setup file logging at {log_file_path}: {e}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(("uvicorn", "fastapi", "starlette", "apscheduler")):
            existing_logger = logging.getLogger(name)
            existing_logger.handlers = [InterceptHandler()]
            existing_logger.propagate = False

    logger.info(f"Loguru logging setup complete. Level: {log_level_name}")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}. Using default: {default}.")
        return default


APP_ENV: str = os.getenv("APP_ENV", "development")

# --- JWT ---
SECRET_KEY: str = os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET")
if not SECRET_KEY:
    logger.critical("FATAL: SECRET_KEY (or JWT_SECRET) environment variable is not set.")
    raise ValueError("SECRET_KEY environment variable is not set.")

ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)
TOKEN_COOKIE_NAME = "token"
COOKIE_SECURE: bool = os.getenv("COOKIE_SECURE", "false").lower() == "true" or APP_ENV == "production"

# --- Database ---
MONGODB_URL: str = os.getenv("MONGODB_URL") or os.getenv("MONGO_URI")
if not MONGODB_URL:
    logger.critical("FATAL: MONGODB_URL (or MONGO_URI) environment variable is not set.")
    raise ValueError("MONGODB_URL environment variable is not set.")

_default_db_name = "rental_app_db"
_path_part = MONGODB_URL.rsplit("/", 1)[-1].split("?")[0]
if _path_part and "://" in MONGODB_URL and MONGODB_URL.count("/") >= 3:
    _default_db_name = _path_part
DATABASE_NAME: str = os.getenv("DATABASE_NAME", _default_db_name)

# --- OTP ---
OTP_EXPIRE_MINUTES: int = _int_env("OTP_EXPIRE_MINUTES", 10)
OTP_MAX_ATTEMPTS: int = _int_env("OTP_MAX_ATTEMPTS", 5)

# --- SMTP ---
SMTP_HOST: str = os.getenv("SMTP_HOST", "")
SMTP_PORT: int = _int_env("SMTP_PORT", 465)
SMTP_USER: str = os.getenv("SMTP_USER", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM: str = os.getenv("SMTP_FROM", SMTP_USER)
SMTP_USE_SSL: bool = os.getenv("SMTP_USE_SSL", "true").lower() == "true"

# --- Scheduler ---
SCHEDULER_TIMEZONE: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")
LATE_CHECK_INTERVAL_MINUTES: int = _int_env("LATE_CHECK_INTERVAL_MINUTES", 15)

logger.info(f"Environment: {APP_ENV}")
logger.info(f"JWT Algorithm: {ALGORITHM}")
logger.info(f"Access Token Expire Minutes: {ACCESS_TOKEN_EXPIRE_MINUTES}")
logger.info(f"Database Name: {DATABASE_NAME}")
