from .paths import STATE_DIR
from .settings import Settings, get_settings

__all__ = ["STATE_DIR", "Settings", "get_settings"]
