import json
from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict, field
from contextlib import contextmanager
import threading


@dataclass
class BatchMetrics:
    """Metrics for one batch group of a phase."""
    phase: str
    batch_index: int
    item_count: int
    failure_count: int = 0
    duration_ms: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def failure_rate(self) -> float:
        if self.item_count == 0:
            return 0.0
        return self.failure_count / self.item_count


@dataclass
class PhaseMetrics:
    """Aggregated metrics for one batched phase (search or fetch)."""
    phase: str
    total_items: int = 0
    total_failures: int = 0
    total_batches: int = 0
    total_delays: int = 0
    total_delay_ms: int = 0
    total_duration_ms: int = 0
    batches: List[BatchMetrics] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.total_failures / self.total_items

    @property
    def average_batch_duration_ms(self) -> float:
        if self.total_batches == 0:
            return 0.0
        return self.total_duration_ms / self.total_batches


class MetricsCollector:
    """Collects batch and phase metrics for a resolution run.

    Safe to share between the batch runner and the orchestrator; all
    mutation goes through a lock.
    """

    def __init__(self, request_id: str = "", platform: str = ""):
        self.request_id = request_id
        self.platform = platform
        self.started_at = datetime.now()
        self.finished_at: Optional[datetime] = None
        self.phases: Dict[str, PhaseMetrics] = {}

        self._lock = threading.Lock()

    def _phase(self, phase: str) -> PhaseMetrics:
        if phase not in self.phases:
            self.phases[phase] = PhaseMetrics(phase=phase)
        return self.phases[phase]

    def start_batch(self, phase: str, batch_index: int, item_count: int) -> BatchMetrics:
        """Mark batch start and return its metrics record."""
        with self._lock:
            return BatchMetrics(
                phase=phase,
                batch_index=batch_index,
                item_count=item_count,
                start_time=datetime.now()
            )

    def end_batch(self, batch: BatchMetrics, failure_count: int = 0) -> None:
        """Mark batch end and fold it into its phase."""
        with self._lock:
            batch.end_time = datetime.now()
            batch.failure_count = failure_count
            if batch.start_time:
                batch.duration_ms = int((batch.end_time - batch.start_time).total_seconds() * 1000)

            phase = self._phase(batch.phase)
            phase.batches.append(batch)
            phase.total_batches += 1
            phase.total_items += batch.item_count
            phase.total_failures += failure_count
            phase.total_duration_ms += batch.duration_ms

    def record_delay(self, phase: str, delay_ms: int) -> None:
        """Record an inter-batch pause."""
        with self._lock:
            metrics = self._phase(phase)
            metrics.total_delays += 1
            metrics.total_delay_ms += max(0, delay_ms)

    @contextmanager
    def batch_context(self, phase: str, batch_index: int, item_count: int):
        """Context manager for one batch; failures are set on the yielded record."""
        batch = self.start_batch(phase, batch_index, item_count)
        try:
            yield batch
        finally:
            self.end_batch(batch, batch.failure_count)

    def finish(self) -> None:
        with self._lock:
            self.finished_at = datetime.now()

    def get_phase(self, phase: str) -> Optional[PhaseMetrics]:
        with self._lock:
            return self.phases.get(phase)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        with self._lock:
            phases = {}
            for name, metrics in self.phases.items():
                phase_dict = asdict(metrics)
                for batch in phase_dict['batches']:
                    if batch['start_time']:
                        batch['start_time'] = batch['start_time'].isoformat()
                    if batch['end_time']:
                        batch['end_time'] = batch['end_time'].isoformat()
                phase_dict['failure_rate'] = metrics.failure_rate
                phases[name] = phase_dict

            return {
                'request_id': self.request_id,
                'platform': self.platform,
                'started_at': self.started_at.isoformat(),
                'finished_at': self.finished_at.isoformat() if self.finished_at else None,
                'phases': phases,
            }

    def save_to_file(self, file_path: str) -> None:
        """Save metrics to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def print_summary(self) -> None:
        """Print metrics summary to stdout."""
        print(f"\n=== Metrics Summary for {self.request_id or 'resolution'} ({self.platform}) ===")
        for name, metrics in self.phases.items():
            print(f"Phase {name}:")
            print(f"  Items: {metrics.total_items}")
            print(f"  Batches: {metrics.total_batches}")
            print(f"  Failures: {metrics.total_failures} ({metrics.failure_rate:.2%})")
            print(f"  Delays: {metrics.total_delays} ({metrics.total_delay_ms}ms)")
            print(f"  Average Batch Duration: {metrics.average_batch_duration_ms:.0f}ms")
