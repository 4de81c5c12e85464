import json
import logging
import os
import time
from typing import Any, Dict, Optional

from .config import env_bool


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            base["exception"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def configure_logging(force_json: Optional[bool] = None) -> bool:
    """Install one stream handler on the root logger. Safe to call repeatedly."""
    use_json = env_bool(os.getenv("LOG_JSON")) if force_json is None else force_json

    root = logging.getLogger()
    if root.handlers:
        return use_json

    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s", "%H:%M:%S"))
    root.setLevel(level)
    root.addHandler(handler)

    # urllib3 debug lines include the bot token in the Telegram URL
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
    return use_json
