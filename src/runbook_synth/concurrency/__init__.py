"""
Concurrency control for runbook-synth
"""

from .semaphore import AsyncSemaphore, SemaphoreStats

__all__ = ["AsyncSemaphore", "SemaphoreStats"]
