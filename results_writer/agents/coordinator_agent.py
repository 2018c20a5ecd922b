"""
Coordinator Agent: runs ingestion then generation and records the run.
"""

import uuid
from typing import Dict, Any
from datetime import datetime
from results_writer.agents.base_agent import BaseAgent, AgentResult
from results_writer.agents.generation_agent import GenerationAgent
from results_writer.agents.ingestion_agent import IngestionAgent
from results_writer.core.state import MEMORY, GenerationRun


class CoordinatorAgent(BaseAgent):
    """Upload-to-markdown pipeline controller."""

    def __init__(self, generation_agent: GenerationAgent = None, ingestion_agent: IngestionAgent = None):
        super().__init__("CoordinatorAgent")
        self.agents = {
            "ingestion": ingestion_agent or IngestionAgent(),
            "generation": generation_agent or GenerationAgent(),
        }

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        """Ingest `file_path` (unless `records` are given), then generate markdown."""
        start = datetime.now()
        run = GenerationRun(
            run_id=task.get("task_id") or uuid.uuid4().hex[:12],
            status="running",
            started_at=start.isoformat(),
            source_file=task.get("file_path"),
            model=task.get("model") or "",
        )

        try:
            self._apply_llm_settings(task)

            records = task.get("records")
            if records is None:
                ingest = self._execute_agent("ingestion", task)
                run.agent_sequence.append("ingestion")
                if not ingest.success:
                    raise RuntimeError(f"Ingestion failed: {ingest.error}")
                records = ingest.data["records"]

            run.row_count = len(records)
            generation_task = dict(task)
            generation_task["records"] = records
            generated = self._execute_agent("generation", generation_task)
            run.agent_sequence.append("generation")
            if not generated.success:
                raise RuntimeError(generated.error)

            run.status = "completed"
            run.output_chars = len(generated.data["markdown"])
            run.model = generated.data.get("model") or run.model
            MEMORY.log_run(run)
            self.log_step(f"Run {run.run_id} produced {run.output_chars} characters")
            return self.succeeded(dict(generated.data, run_id=run.run_id), start)

        except Exception as e:
            run.status = "failed"
            run.errors.append(str(e))
            MEMORY.log_run(run)
            return self.failed(str(e), start)

    def _execute_agent(self, agent_key: str, task: Dict[str, Any]) -> AgentResult:
        """Execute single agent with error handling."""
        try:
            return self.agents[agent_key].execute(task)
        except Exception as e:
            self.log_error(f"{agent_key} execution failed: {str(e)}")
            return AgentResult(agent_name=agent_key, success=False, data={}, error=str(e))

    def _apply_llm_settings(self, task: Dict[str, Any]) -> None:
        llm_settings = task.get("llm_settings")
        if not llm_settings:
            return
        client = self.agents["generation"].llm
        if hasattr(client, "apply_runtime_settings"):
            client.apply_runtime_settings(llm_settings)
            self.log_step("Applied runtime LLM settings")
