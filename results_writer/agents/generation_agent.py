"""
Generation Agent: turns uploaded rows into a markdown Results chapter via the LLM.
"""

import json
from typing import Dict, Any, List
from datetime import datetime
from results_writer.agents.base_agent import BaseAgent, AgentResult
from results_writer.config import CONFIG, load_system_prompt
from results_writer.core.llm_interface import llm


def build_data_prompt(records: List[Dict[str, Any]], sample_rows: int = None) -> str:
    """Describe the dataset for the model: a CSV-style sample, the row count, then every row as JSON."""
    if not records:
        return ""
    sample_rows = sample_rows or CONFIG.generation.sample_rows
    sample = records[:sample_rows]
    headers = list(sample[0].keys())

    lines = ["Analyze this data:", "", ",".join(str(h) for h in headers)]
    for row in sample:
        lines.append(",".join("" if row.get(h) is None else str(row.get(h)) for h in headers))
    lines.append("")
    lines.append(f"Total rows in dataset: {len(records)}")
    lines.append("")
    lines.append(f"Full dataset: {json.dumps(records, indent=2, default=str)}")
    return "\n".join(lines) + "\n"


class GenerationAgent(BaseAgent):
    """Generates the Results chapter markdown from bounded row records."""

    def __init__(self, client=None):
        super().__init__("GenerationAgent")
        self.llm = client or llm

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        start = datetime.now()

        try:
            records = task.get("records") or []
            max_rows = int(task.get("max_rows") or CONFIG.generation.max_rows)
            if len(records) > max_rows:
                self.log_step(f"Truncating {len(records)} rows to the first {max_rows}")
                records = records[:max_rows]

            system_prompt = task.get("system_prompt") or load_system_prompt()
            prompt = build_data_prompt(records) or "No data was provided."
            model = task.get("model") or None

            self.log_step(f"Generating Results chapter from {len(records)} rows")
            response = self.llm.generate(
                prompt,
                system_prompt=system_prompt,
                temperature=task.get("temperature"),
                model=model,
            )

            markdown = self.llm.extract_markdown(response)
            if not markdown or not markdown.strip():
                return self.failed("The AI model did not return any content. Please try again.", start)

            self.save_to_state("last_markdown", markdown)
            return self.succeeded(
                {
                    "markdown": markdown,
                    "row_count": len(records),
                    "model": model or getattr(self.llm, "model_name", ""),
                },
                start,
            )

        except Exception as e:
            return self.failed(str(e), start)
