"""mpybuild — cross-compile MicroPython native modules in CI."""

__version__ = "0.1.0"
