"""
Ingestion Agent: reads an uploaded CSV/XLSX/XLS file into bounded row records.
"""

from typing import Dict, Any
from datetime import datetime
from results_writer.agents.base_agent import BaseAgent, AgentResult
from results_writer.backend.file_parser import FileParser
from results_writer.config import CONFIG


class IngestionAgent(BaseAgent):
    """Parses uploads and keeps the first rows for generation."""

    def __init__(self):
        super().__init__("IngestionAgent")
        self.parser = FileParser()

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        start = datetime.now()

        try:
            file_path = task.get("file_path")
            if not file_path:
                raise ValueError("No file provided")

            max_rows = int(task.get("max_rows") or CONFIG.generation.max_rows)
            self.log_step(f"Parsing {file_path}")
            parsed = self.parser.parse(file_path, limit=max_rows)

            if not parsed["records"]:
                raise ValueError(f"No data rows found in {parsed['file_name']}")

            self.log_step(
                f"Parsed {parsed['total_rows']} rows x {len(parsed['columns'])} columns, "
                f"keeping {parsed['rows']}"
            )
            self.save_to_state("parsed_data", parsed)
            return self.succeeded(parsed, start)

        except Exception as e:
            return self.failed(str(e), start)
