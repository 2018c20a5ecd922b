"""
System configuration: LLM backends, generation limits, page layout, charts.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SYSTEM_PROMPT = (
    "Generate and edit text based on data. Format your response with markdown. "
    "Include tables where appropriate. Make sections for demographics, knowledge, "
    "practices, and challenges."
)


class LLMBackend(Enum):
    """Supported LLM backends."""
    OPENAI = "openai"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    LM_STUDIO = "lm_studio"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"


@dataclass
class LLMConfig:
    """LLM configuration."""
    backend: LLMBackend = LLMBackend.GEMINI
    model_name: str = "gemini-2.0-flash"
    api_key: str = ""
    base_url: str = "https://generativelanguage.googleapis.com"
    temperature: float = 0.7
    max_tokens: int = 8192
    timeout: int = 60

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        backend_str = os.getenv("LLM_BACKEND", "gemini").lower()
        backend = LLMBackend[backend_str.upper()] if backend_str.upper() in LLMBackend.__members__ else LLMBackend.GEMINI

        config_map = {
            LLMBackend.OPENAI: {"model_name": "gpt-4o-mini", "base_url": "https://api.openai.com/v1"},
            LLMBackend.GEMINI: {"model_name": "gemini-2.0-flash", "base_url": "https://generativelanguage.googleapis.com"},
            LLMBackend.OLLAMA: {"model_name": "mistral:latest", "base_url": "http://localhost:11434/v1"},
            LLMBackend.LM_STUDIO: {"model_name": "local-model", "base_url": "http://localhost:1234/v1"},
            LLMBackend.ANTHROPIC: {"model_name": "claude-3-5-sonnet-20241022", "base_url": "https://api.anthropic.com"},
            LLMBackend.OPENROUTER: {"model_name": "openai/gpt-4o-mini", "base_url": "https://openrouter.ai/api/v1"},
        }

        defaults = config_map.get(backend, {})
        return cls(
            backend=backend,
            model_name=os.getenv("LLM_MODEL", defaults.get("model_name")),
            api_key=os.getenv("LLM_API_KEY", ""),
            base_url=os.getenv("LLM_BASE_URL", defaults.get("base_url")),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "8192")),
            timeout=int(os.getenv("LLM_TIMEOUT", "60")),
        )


@dataclass
class GenerationConfig:
    """Limits applied to uploaded data before it is sent to the LLM."""
    max_rows: int = 100
    sample_rows: int = 10
    system_prompt_path: str = "system_prompt.txt"
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass
class PageConfig:
    """Exported document geometry, in points (72 pt = 1 inch)."""
    width_pt: float = 595.28
    height_pt: float = 841.89
    margin_pt: float = 50
    max_image_width: int = 500
    max_image_height: int = 400
    body_font: str = "Times New Roman"
    code_font: str = "Courier New"
    body_size_pt: int = 11
    default_title: str = "Research Document"

    @property
    def printable_width(self) -> float:
        return self.width_pt - 2 * self.margin_pt


@dataclass
class ChartConfig:
    """Chart rendering defaults (pixels at 96 DPI for an A4 page)."""
    page_width_px: int = 794
    page_height_px: int = 1123
    margin_px: int = 40
    dpi: int = 96
    capture_dpi: int = 150
    font_size: int = 11
    colors: List[str] = field(
        default_factory=lambda: ["#4285F4", "#DB4437", "#F4B400", "#0F9D58", "#AB47BC", "#00ACC1", "#FF7043", "#9E9E9E"]
    )

    @property
    def width_px(self) -> int:
        return self.page_width_px - 2 * self.margin_px

    @property
    def height_px(self) -> int:
        return min(500, self.page_height_px - 2 * self.margin_px)


@dataclass
class FileParsingConfig:
    """File parsing configuration."""
    supported_formats: list = field(default_factory=lambda: ["csv", "xlsx", "xls"])
    max_file_size_mb: int = 25


@dataclass
class SystemConfig:
    """Master system configuration."""
    llm: LLMConfig = field(default_factory=LLMConfig.from_env)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    page: PageConfig = field(default_factory=PageConfig)
    chart: ChartConfig = field(default_factory=ChartConfig)
    file_parsing: FileParsingConfig = field(default_factory=FileParsingConfig)

    # Paths
    upload_dir: str = "uploads"
    log_dir: str = "logs"

    # Runtime
    debug_mode: bool = bool(os.getenv("DEBUG", "False").lower() == "true")

    @classmethod
    def from_env(cls):
        """Load complete config from environment."""
        return cls(
            llm=LLMConfig.from_env(),
            generation=GenerationConfig(
                max_rows=int(os.getenv("MAX_ROWS", "100")),
                system_prompt_path=os.getenv("SYSTEM_PROMPT_PATH", "system_prompt.txt"),
            ),
        )


def load_system_prompt(config: GenerationConfig = None) -> str:
    """Read the system prompt file, falling back to the built-in prompt."""
    config = config or CONFIG.generation
    prompt_path = Path(config.system_prompt_path)
    try:
        if prompt_path.exists():
            prompt = prompt_path.read_text(encoding="utf-8").strip()
            if prompt:
                return prompt
    except OSError as e:
        logging.getLogger(__name__).error(f"Could not read system prompt {prompt_path}: {str(e)}")
    return config.default_system_prompt


def configure_logging(log_dir: str = None) -> None:
    """Set up root logging once: file + console."""
    log_path = Path(log_dir or CONFIG.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO if not CONFIG.debug_mode else logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path / 'app.log'),
            logging.StreamHandler()
        ]
    )


# Global config instance
CONFIG = SystemConfig.from_env()
