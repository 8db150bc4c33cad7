from .base import BaseSource

__all__ = [
    "BaseSource",
]
