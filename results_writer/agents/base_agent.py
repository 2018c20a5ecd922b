"""
Base agent class for the ingestion and generation steps.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime
import logging
from results_writer.core.state import MEMORY


@dataclass
class AgentResult:
    """Result from agent execution."""
    agent_name: str
    success: bool
    data: Dict[str, Any]
    error: Optional[str] = None
    duration_seconds: float = 0


class BaseAgent(ABC):
    """Common logging, shared-state access and result helpers."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.state = MEMORY

    @abstractmethod
    def execute(self, task: Dict[str, Any]) -> AgentResult:
        """Run the agent's step; never raises, failures come back as results."""
        pass

    def log_step(self, message: str):
        self.logger.info(f"[{self.name}] {message}")

    def log_error(self, message: str):
        self.logger.error(f"[{self.name}] {message}")

    def save_to_state(self, key: str, value: Any):
        self.state.set(f"{self.name}:{key}", value)

    def succeeded(self, data: Dict[str, Any], start: datetime) -> AgentResult:
        return AgentResult(
            agent_name=self.name,
            success=True,
            data=data,
            duration_seconds=(datetime.now() - start).total_seconds(),
        )

    def failed(self, error: str, start: datetime) -> AgentResult:
        self.log_error(error)
        return AgentResult(
            agent_name=self.name,
            success=False,
            data={},
            error=error,
            duration_seconds=(datetime.now() - start).total_seconds(),
        )
