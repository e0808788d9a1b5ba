"""Configuration settings and constants for tresor.

The constants live in `tresor.config.settings`; they are re-exported here so
callers can write `from tresor.config import SALT_LENGTH`.
"""

from .settings import *  # noqa: F401,F403
from .settings import __all__  # noqa: F401
