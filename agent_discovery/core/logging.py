"""
Logging Configuration
"""
import logging
import sys
from pathlib import Path
from agent_discovery.core.config import get_settings


def setup_logging():
    """Configure application-wide logging"""
    settings = get_settings()

    handlers = [
        # Console handler
        logging.StreamHandler(sys.stdout),
    ]

    if settings.LOG_DIR:
        # Create logs directory if it doesn't exist
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "agent_discovery.log"))

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=settings.LOG_FORMAT,
        handlers=handlers
    )

    # Set level for external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get logger for a specific module"""
    return logging.getLogger(name)
