"""plugin — Host-facing message handler."""
from .obs_plugin import ObsPlugin

__all__ = ["ObsPlugin"]
