# src/gbp_forecast/__init__.py
from .version_info import VERSION as __version__  # noqa: F401
