"""
Logging helpers for the Blacklist Registry

Keeps user-supplied text from forging log lines and wires the root logger
from the ``logging`` section of config.yaml.
"""

import re
import logging
from pathlib import Path
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def sanitize_for_logging(text: str, max_length: int = 500) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text
        max_length: Maximum length kept

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    return sanitized[:max_length] if len(sanitized) > max_length else sanitized


def setup_logging(logging_config: Optional[object] = None) -> None:
    """Configure the root logger from a LoggingConfig section.

    Args:
        logging_config: config_manager.LoggingConfig (defaults used when None)
    """
    level_name = getattr(logging_config, "level", "INFO")
    fmt = getattr(logging_config, "format", DEFAULT_LOG_FORMAT)
    console = getattr(logging_config, "console", True)
    log_file = getattr(logging_config, "file", "")

    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format=fmt,
        handlers=handlers or None,
        force=True,
    )
