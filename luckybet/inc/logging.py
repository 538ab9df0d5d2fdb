import logging
import logging.handlers
import os

logger = logging.getLogger('luckybet')
logger.setLevel(logging.DEBUG)

dt_fmt = '%Y-%m-%d %H:%M:%S'
formatter = logging.Formatter('[{asctime}] [{levelname:<8}] {name}: {message}', dt_fmt, style='{')

def _resolve_log_path(settings=None) -> str:
    override = os.getenv("LUCKYBET_LOG_PATH")
    if override:
        return override
    if settings is not None:
        path = settings.get("LOGGING.path", None)
        if path:
            return str(path)
    return "luckybet.log"

def configure_logging(settings=None) -> logging.Logger:
    """Attach the rotating file handler once; safe to call again."""
    if any(getattr(h, "_luckybet", False) for h in logger.handlers):
        return logger
    log_path = _resolve_log_path(settings)
    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        filename=log_path,
        encoding='utf-8',
        maxBytes=32 * 1024 * 1024,  # 32 MiB
        backupCount=5,  # Rotate through 5 files
    )
    handler.setFormatter(formatter)
    handler._luckybet = True
    logger.addHandler(handler)

    level = str(settings.get("LOGGING.level", "DEBUG")).upper() if settings is not None else "DEBUG"
    logger.setLevel(getattr(logging, level, logging.DEBUG))
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
    return logger
