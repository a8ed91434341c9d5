"""Configuration settings and constants for zkvault.

Everything lives in `config.settings`; this package re-exports it so both
`from config import DEFAULT_ITERATIONS` and
`from config.settings import DEFAULT_ITERATIONS` work.
"""

from .settings import *  # noqa: F401,F403
from .settings import __all__  # noqa: F401
