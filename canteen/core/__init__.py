"""
Core module initialization.
Exports configuration utilities.
"""

from canteen.core.config import get_settings, Settings, EnvironmentMode, DispatchMode

__all__ = ["get_settings", "Settings", "EnvironmentMode", "DispatchMode"]
