"""Version of the shading toolchain."""

__version__ = "0.1.0"
