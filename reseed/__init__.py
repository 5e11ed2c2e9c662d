"""
reseed - Reset and reseed the databases of a multi-service platform.

Drives every backend service of one allow-listed client environment through
migrate and seed, and reports a per-service outcome.
"""

__version__ = "0.1.0"


__all__ = ["ReseedConfig", "load_config", "get_reseed_home"]

from .config import ReseedConfig, load_config, get_reseed_home
