"""miri-script package root."""

from miri_script.exceptions import MiriScriptError

__all__ = ["__version__", "MiriScriptError"]

__version__ = "0.1.0"
