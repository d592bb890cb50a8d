import logging
import os

LOG_LEVEL_ENV_VAR = "DD_LOG_LEVEL"

# Level names accepted on top of the stdlib ones, aligned with the agent's
# https://docs.datadoghq.com/agent/troubleshooting/debug_mode/?tab=agentv6v7#agent-log-level
_EXTRA_LEVELS = {
    "TRACE": 5,
    "WARN": logging.WARNING,
    "OFF": logging.CRITICAL + 50,
}


def get_log_level(str_level):
    """
    Resolve a level name (any case) or a numeric level to a logging level.
    Returns None for unknown values.
    """
    str_level = str_level.strip().upper()
    if str_level.isdigit():
        return int(str_level)
    if str_level in _EXTRA_LEVELS:
        return _EXTRA_LEVELS[str_level]
    level = logging.getLevelName(str_level)
    if isinstance(level, int):
        return level
    return None


def initialize_logging(name, env_var=LOG_LEVEL_ENV_VAR):
    logger = logging.getLogger(name)
    str_level = os.environ.get(env_var) or "INFO"
    level = get_log_level(str_level)
    if level is None:
        logger.setLevel(logging.INFO)
        logger.warning("Invalid log level: %s Defaulting to INFO", str_level)
    else:
        logger.setLevel(level)
    return logger
