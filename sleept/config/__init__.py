"""Client configuration."""

from .model import ClientOptions, normalize_channels  # noqa: F401

__all__ = ["ClientOptions", "normalize_channels"]
