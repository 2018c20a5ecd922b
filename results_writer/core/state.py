"""
Shared state: generation run history and agent scratch memory.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from datetime import datetime
import threading


@dataclass
class GenerationRun:
    """One upload-to-markdown generation attempt."""
    run_id: str
    status: str = "pending"  # pending, running, completed, failed
    started_at: str = ""
    completed_at: str = ""
    source_file: Optional[str] = None
    row_count: int = 0
    model: str = ""
    output_chars: int = 0
    agent_sequence: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


class SharedMemory:
    """Thread-safe memory shared by the agents and the UI."""

    def __init__(self):
        self._memory = {}
        self._lock = threading.RLock()
        self._history = []

    def set(self, key: str, value: Any):
        with self._lock:
            self._memory[key] = value

    def get(self, key: str, default=None):
        with self._lock:
            return self._memory.get(key, default)

    def log_run(self, run: GenerationRun):
        """Record a finished run."""
        with self._lock:
            run.completed_at = datetime.now().isoformat()
            self._history.append(run.to_dict())

    def get_history(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._history)

    def clear(self):
        with self._lock:
            self._memory.clear()
            self._history.clear()


# Global shared memory instance
MEMORY = SharedMemory()
