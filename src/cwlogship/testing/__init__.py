"""Test helpers for code built on cwlogship."""

from .fakes import InMemoryLogService

__all__ = ["InMemoryLogService"]
