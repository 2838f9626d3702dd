"""Checkout, build and release orchestration for sets of dependent git repositories."""

from .config import load_platform
from .service import PlatformOrchestrator, create_orchestrator

__all__ = ["PlatformOrchestrator", "create_orchestrator", "load_platform"]
