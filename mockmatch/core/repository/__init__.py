"""Repository pattern implementation."""

from .base import BaseRepository, T_Model

__all__ = ["BaseRepository", "T_Model"]
