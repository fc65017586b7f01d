from cutoff.core.config import Settings, settings
from cutoff.core.logging import configure_logging

__all__ = ["Settings", "settings", "configure_logging"]
