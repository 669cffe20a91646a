"""Metrics tracking for funnel runs"""

from typing import Dict, Any, Optional
from datetime import datetime
from loguru import logger
from collections import defaultdict


class MetricsTracker:
    """Track per-run stage outcomes, failures and quote counts"""

    def __init__(self):
        """Initialize metrics tracker"""
        self.metrics = {
            'stages_completed': 0,
            'stages_failed': 0,
            'errors': 0,
            'quotes_found': 0,
            'by_stage': defaultdict(int),
            'stage_durations': {},
            'stages': [],  # Ordered stage log
            'failures': []  # Detailed failure log with reasons
        }
        self.started_at = datetime.now()
        logger.debug("Metrics tracker initialized")

    def record_stage(self, stage: str, success: bool, message: str, duration_seconds: float = 0.0):
        """Record one handled stage"""
        if success:
            self.metrics['stages_completed'] += 1
        else:
            self.metrics['stages_failed'] += 1
        self.metrics['by_stage'][stage] += 1
        self.metrics['stage_durations'][stage] = round(duration_seconds, 3)
        self.metrics['stages'].append({
            'timestamp': datetime.now().isoformat(),
            'stage': stage,
            'success': success,
            'message': message[:200],  # Truncate
        })

    def record_quotes(self, count: int):
        self.metrics['quotes_found'] = count

    def record_failure(
        self,
        failure_type: str,
        component: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Record a detailed failure

        Args:
            failure_type: Error kind (ElementNotFound, AmbiguousOptionError, ...)
            component: Stage or component that failed
            reason: Detailed reason for failure
            context: Additional context (location, screenshot, ...)
        """
        self.metrics['failures'].append({
            'timestamp': datetime.now().isoformat(),
            'type': failure_type,
            'component': component,
            'reason': reason,
            'context': context or {}
        })
        self.metrics['errors'] += 1

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary"""
        return {
            'stages_completed': self.metrics['stages_completed'],
            'stages_failed': self.metrics['stages_failed'],
            'errors': self.metrics['errors'],
            'quotes_found': self.metrics['quotes_found'],
            'by_stage': dict(self.metrics['by_stage']),
            'stage_durations': dict(self.metrics['stage_durations']),
            'stages': list(self.metrics['stages']),
            'failures': list(self.metrics['failures']),
            'elapsed_seconds': round((datetime.now() - self.started_at).total_seconds(), 3),
        }
