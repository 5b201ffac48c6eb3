"""
Training Metrics
Per-flush statistics history and trend analysis for the training loop
"""

import time
from collections import defaultdict
from typing import Any, Dict, Optional

import numpy as np
import structlog

logger = structlog.get_logger()


class TrainingMetricsCollector:
    """Collects and aggregates training metrics for monitoring"""

    def __init__(self, history_size: int = 1000):
        self.history_size = history_size
        self.metrics_history = defaultdict(list)
        self.current_metrics = {}
        self.totals = defaultdict(float)

    def record_metrics(self, metrics: Dict[str, float], timestamp: Optional[float] = None):
        """Record metrics with timestamp"""
        if timestamp is None:
            timestamp = time.time()

        self.current_metrics = metrics.copy()

        for metric_name, value in metrics.items():
            history = self.metrics_history[metric_name]
            history.append({"value": value, "timestamp": timestamp})
            if len(history) > self.history_size:
                del history[0]
            self.totals[metric_name] += value

    def get_current_metrics(self) -> Dict[str, float]:
        """Get current metrics"""
        return self.current_metrics.copy()

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of every recorded metric"""
        summary = {}

        for metric_name, history in self.metrics_history.items():
            values = [entry["value"] for entry in history]
            summary[metric_name] = {
                "current": values[-1],
                "total": self.totals[metric_name],
                "mean": float(np.mean(values)),
                "count": len(values),
            }

        return summary

    def get_performance_trends(self, metric_name: str, window_size: int = 10) -> Dict[str, Any]:
        """Get trend of a metric over its most recent window"""
        if metric_name not in self.metrics_history:
            return {}

        history = self.metrics_history[metric_name]
        recent_history = history[-window_size:]

        if len(recent_history) < 2:
            return {"trend": "insufficient_data"}

        values = [entry["value"] for entry in recent_history]

        x = np.arange(len(values))
        slope = float(np.polyfit(x, values, 1)[0])

        # loss-like metrics: a negative slope is an improvement
        trend_direction = "decreasing" if slope < 0 else "increasing" if slope > 0 else "stable"

        return {
            "trend": trend_direction,
            "slope": slope,
            "current_value": values[-1],
            "average_value": float(np.mean(values)),
            "std_deviation": float(np.std(values)),
            "min_value": min(values),
            "max_value": max(values),
        }
