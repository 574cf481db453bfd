import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("chorus_service")

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Optional[Dict[str, Any]] = None) -> None:
    """Apply the `logging` section of the settings to the root logger."""
    log_cfg = (settings or {}).get("logging", {}) or {}
    level_name = str(log_cfg.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=log_cfg.get("format", DEFAULT_FORMAT))
    logger.setLevel(level)
