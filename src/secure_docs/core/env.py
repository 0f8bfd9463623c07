from __future__ import annotations

import os
import warnings
from enum import StrEnum
from functools import cache


class Env(StrEnum):
    LOCAL = "local"
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


_ALIASES: dict[str, Env] = {
    "development": Env.DEV,
    "testing": Env.TEST,
    "staging": Env.TEST,
    "production": Env.PROD,
}


@cache
def get_env() -> Env:
    """
    Deployment environment, read once from ``DOCS_ENV`` then ``APP_ENV``.

    Only logging defaults depend on it (JSON at INFO in prod). Unknown values
    fall back to LOCAL with a warning.
    """
    raw = os.getenv("DOCS_ENV") or os.getenv("APP_ENV")
    if not raw:
        return Env.LOCAL
    val = raw.strip().lower()
    if val in {e.value for e in Env}:
        return Env(val)
    if val in _ALIASES:
        return _ALIASES[val]
    warnings.warn(f"Unrecognized environment '{raw}', defaulting to 'local'.", RuntimeWarning, stacklevel=2)
    return Env.LOCAL


def is_prod() -> bool:
    return get_env() is Env.PROD
