import logging
from typing import Optional

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
ROOT_LOGGER = "admin-notifications"


def get_logger(component: str = "", level: Optional[str] = None) -> logging.Logger:
    """Return a component logger under the service root, attaching the stream handler once."""
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if level:
        root.setLevel(level)
    return root.getChild(component) if component else root
