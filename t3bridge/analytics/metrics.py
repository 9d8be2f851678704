"""Metrics tracking for extraction runs"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from t3bridge.extraction.models import RunOutcome, RunResult


class MetricsTracker:
    """Track extraction outcomes for the current process"""

    def __init__(self):
        """Initialize metrics tracker"""
        self.reset()
        logger.info("Metrics tracker initialized")

    def record_run(self, result: RunResult, model: str = 'unknown', context: Optional[Dict[str, Any]] = None):
        """
        Record the result of one extraction run

        Args:
            result: Terminal run result
            model: Model name the question was sent to
            context: Additional context (correlation id, generation kind, ...)
        """
        self.metrics['runs'] += 1
        self.metrics['by_outcome'][result.outcome.value] += 1
        self.metrics['by_settle_path'][result.settled_by.value] += 1
        self.metrics['by_model'][model] += 1
        self.metrics['response_times'].append(result.elapsed_ms / 1000)

        if result.candidate is not None:
            self.metrics['by_strategy'][result.candidate.strategy] += 1

        if result.outcome != RunOutcome.SUCCESS:
            self.record_failure(
                failure_type=result.outcome.value,
                model=model,
                reason=result.error or 'no accepted candidate before deadline',
                context=context,
            )

    def record_failure(
        self,
        failure_type: str,
        model: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """Record a detailed failure (timeout, error, navigation)"""
        self.metrics['failures'].append({
            'timestamp': datetime.now().isoformat(),
            'type': failure_type,
            'model': model,
            'reason': reason[:200],
            'context': context or {}
        })

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary"""
        response_times = self.metrics['response_times']
        avg_response_time = sum(response_times) / len(response_times) if response_times else 0
        runs = self.metrics['runs']
        successes = self.metrics['by_outcome'].get(RunOutcome.SUCCESS.value, 0)

        return {
            'total_runs': runs,
            'success_rate': successes / runs if runs > 0 else 0,
            'by_outcome': dict(self.metrics['by_outcome']),
            'by_settle_path': dict(self.metrics['by_settle_path']),
            'by_strategy': dict(self.metrics['by_strategy']),
            'by_model': dict(self.metrics['by_model']),
            'avg_response_time_seconds': avg_response_time,
            'failures': list(self.metrics['failures'])
        }

    def reset(self):
        """Reset metrics"""
        self.metrics = {
            'runs': 0,
            'by_outcome': defaultdict(int),
            'by_settle_path': defaultdict(int),
            'by_strategy': defaultdict(int),
            'by_model': defaultdict(int),
            'response_times': [],
            'failures': []
        }
