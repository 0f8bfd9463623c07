from .env import Env, get_env, is_prod
from .logging import JsonFormatter, setup_logging

__all__ = ["Env", "get_env", "is_prod", "JsonFormatter", "setup_logging"]
