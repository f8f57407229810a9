import logging
import os

LOG_LEVEL_ENV = "SRPG_LOG_LEVEL"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def resolve_level(level_name, default_level: int) -> int:
    """Map a level name such as ``"debug"`` to its number, else ``default_level``."""
    if not level_name:
        return default_level
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else default_level


def configure_logging(
    default_level: int = logging.INFO,
    *,
    env_var: str = LOG_LEVEL_ENV,
    fmt: str = LOG_FORMAT,
) -> int:
    """Configure the root logger for the save tools and return the level used.

    The level named by ``env_var`` (SRPG_LOG_LEVEL by default) wins over
    ``default_level``; unknown names are ignored.
    """
    level = resolve_level(os.getenv(env_var), default_level)
    logging.basicConfig(level=level, format=fmt)
    return level
