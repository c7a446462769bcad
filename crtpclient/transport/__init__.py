"""Transport abstractions for crtpclient."""

from .base import Link, LinkFactory

__all__ = ["Link", "LinkFactory"]
