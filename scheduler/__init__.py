"""Scheduler module for periodic emerging trends discovery."""

from scheduler.scheduler import DISCOVERY_JOB_ID, DiscoveryScheduler, get_scheduler

__all__ = ["DiscoveryScheduler", "get_scheduler", "DISCOVERY_JOB_ID"]
