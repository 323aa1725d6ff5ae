"""
Metrics collection and aggregation for the LinkedIn connection automation.

This module provides functionality for collecting, aggregating, and exporting
metrics about automation stages, per-person connection outcomes, and circuit
breaker trips.
"""

import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

import structlog


class MetricsCollector:
    """
    Collects and aggregates metrics for one automation process.

    Stage metrics track success/failure counts and durations of the login,
    navigation and processing stages. Connection metrics track what happened to
    every person card that was evaluated.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize a new metrics collector.

        Args:
            config: Optional configuration dictionary (max_duration_samples, max_errors)
        """
        self.config = config or {}
        self.logger = structlog.get_logger(__name__)
        self.metrics: Dict[str, Dict[str, Any]] = {}
        self.operation_metrics: Dict[str, Dict[str, Any]] = {}
        self.connection_metrics: Dict[str, Dict[str, Any]] = {}
        self.lock = threading.RLock()
        self.session_id = f"session_{int(time.time())}"
        self.start_time = time.time()

    def _operation_entry(self, name: str) -> Dict[str, Any]:
        if name not in self.operation_metrics:
            self.operation_metrics[name] = {
                "total_executions": 0,
                "successes": 0,
                "failures": 0,
                "total_attempts": 0,
                "total_duration_ms": 0,
                "durations": [],
                "circuit_breaker_trips": 0,
                "last_execution_time": time.time(),
                "errors": [],
            }
        return self.operation_metrics[name]

    def record_operation(
        self,
        name: str,
        status: str,
        duration_ms: float,
        attempts: int = 1,
        error: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record a single execution of a named operation.

        Args:
            name: Operation name, e.g. "login" or "navigation"
            status: "success" or "failure"
            duration_ms: Duration of the operation in milliseconds
            attempts: Attempts the retry policy used
            error: Error message if the operation failed
            context: Additional context such as the page URL
        """
        with self.lock:
            metrics = self._operation_entry(name)
            metrics["total_executions"] += 1
            metrics["total_attempts"] += attempts
            metrics["total_duration_ms"] += duration_ms
            metrics["durations"].append(duration_ms)
            metrics["last_execution_time"] = time.time()

            max_samples = self.config.get("max_duration_samples", 100)
            if len(metrics["durations"]) > max_samples:
                metrics["durations"] = metrics["durations"][-max_samples:]

            if status == "success":
                metrics["successes"] += 1
            elif status == "failure":
                metrics["failures"] += 1
                metrics["errors"].append({
                    "timestamp": time.time(),
                    "error": error or "Unknown error",
                    "attempts": attempts,
                    "context": context or {},
                })
                max_errors = self.config.get("max_errors", 10)
                if len(metrics["errors"]) > max_errors:
                    metrics["errors"] = metrics["errors"][-max_errors:]

    def record_circuit_breaker_state_change(self, breaker_name: str, old_state: str, new_state: str) -> None:
        """
        Record a circuit breaker state change.

        Args:
            breaker_name: Name of the circuit breaker (the operation it protects)
            old_state: Previous state of the circuit breaker
            new_state: New state of the circuit breaker
        """
        with self.lock:
            metrics = self._operation_entry(breaker_name)
            if old_state == "closed" and new_state == "open":
                metrics["circuit_breaker_trips"] += 1

    def record_connection(
        self,
        card_id: str,
        status: str,
        duration_ms: float,
        info: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record what happened to one person card.

        Args:
            card_id: Within-run id of the card
            status: "success", "failure" or "skipped"
            duration_ms: Time spent on the card in milliseconds
            info: Name, mutual count, skip reason and similar details
        """
        with self.lock:
            if "connections" not in self.metrics:
                self.metrics["connections"] = {
                    "total_evaluated": 0,
                    "successes": 0,
                    "failures": 0,
                    "skipped": 0,
                    "total_duration_ms": 0,
                }

            totals = self.metrics["connections"]
            totals["total_evaluated"] += 1
            totals["total_duration_ms"] += duration_ms
            if status == "success":
                totals["successes"] += 1
            elif status == "failure":
                totals["failures"] += 1
            elif status == "skipped":
                totals["skipped"] += 1

            self.connection_metrics[card_id] = {
                "status": status,
                "duration_ms": duration_ms,
                "timestamp": time.time(),
                "info": info or {},
            }

    def get_operation_metrics(self, name: Optional[str] = None) -> Dict[str, Any]:
        """
        Get metrics for one operation or all of them.

        Args:
            name: Operation name, or None for all operations

        Returns:
            Dictionary with operation metrics
        """
        with self.lock:
            if name and name in self.operation_metrics:
                return self._derived_metrics(name)
            return {op: self._derived_metrics(op) for op in self.operation_metrics}

    def _derived_metrics(self, name: str) -> Dict[str, Any]:
        metrics = self.operation_metrics[name]

        p95_duration = None
        avg_duration = None
        if metrics["durations"]:
            sorted_durations = sorted(metrics["durations"])
            p95_idx = int(len(sorted_durations) * 0.95)
            p95_duration = sorted_durations[min(p95_idx, len(sorted_durations) - 1)]
            avg_duration = metrics["total_duration_ms"] / metrics["total_executions"]

        return {
            "total_executions": metrics["total_executions"],
            "successes": metrics["successes"],
            "failures": metrics["failures"],
            "total_attempts": metrics["total_attempts"],
            "success_rate": round(metrics["successes"] / max(metrics["total_executions"], 1) * 100, 2),
            "avg_duration_ms": round(avg_duration, 2) if avg_duration is not None else None,
            "p95_duration_ms": round(p95_duration, 2) if p95_duration is not None else None,
            "circuit_breaker_trips": metrics["circuit_breaker_trips"],
            "last_execution_time": time.strftime(
                "%Y-%m-%dT%H:%M:%SZ", time.gmtime(metrics["last_execution_time"])
            ),
            "recent_errors": metrics["errors"][-3:],
        }

    def get_aggregated_metrics(self) -> Dict[str, Any]:
        """
        Get aggregated metrics for the current session.

        Returns:
            Dictionary with all aggregated metrics
        """
        with self.lock:
            return {
                "session_id": self.session_id,
                "start_time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.start_time)),
                "current_time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time())),
                "duration_seconds": int(time.time() - self.start_time),
                "operations": self.get_operation_metrics(),
                "connections": self.metrics.get("connections", {
                    "total_evaluated": 0,
                    "successes": 0,
                    "failures": 0,
                    "skipped": 0,
                }),
            }

    def export_metrics_to_json(self, file_path) -> str:
        """
        Export metrics to a JSON file.

        Args:
            file_path: Path to save the JSON file

        Returns:
            Path to the exported metrics file
        """
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump({"aggregated_metrics": self.get_aggregated_metrics()}, f, indent=2)

        self.logger.info("metrics_exported", file_path=str(path))
        return str(path)
