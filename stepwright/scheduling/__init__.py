"""
Scheduling module exports.
"""

from stepwright.scheduling.cron import CroniterEvaluator
from stepwright.scheduling.scheduler import Scheduler

__all__ = ["CroniterEvaluator", "Scheduler"]
