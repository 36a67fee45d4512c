"""spanharness — drive sample apps under test and collect their span dumps."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("spanharness")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
