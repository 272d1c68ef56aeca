"""
bson-text-repair: restore text fields of MongoDB records whose UTF-16 code
units were truncated to their low byte before storage.

The package root stays import-light: no config loading and no logging setup
happen at import time.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
