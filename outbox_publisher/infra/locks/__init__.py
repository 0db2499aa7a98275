"""Distributed named locks backed by the shedlock table."""

from __future__ import annotations

from .coordinator import Clock, LockCoordinator
from .models import LockRecord

__all__ = ["Clock", "LockCoordinator", "LockRecord"]
