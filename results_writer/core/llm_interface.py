"""
Unified LLM interface for Results-chapter generation across multiple backends.
"""

import re
from typing import Any, Dict, Optional, Tuple

from results_writer.config import CONFIG, LLMBackend

MARKDOWN_FENCE_RE = re.compile(r"```(?:markdown|md)?[ \t]*\r?\n([\s\S]*?)\r?\n```", re.IGNORECASE)

# Backends reached through the OpenAI chat-completions API.
OPENAI_COMPATIBLE = (LLMBackend.OPENAI, LLMBackend.OLLAMA, LLMBackend.LM_STUDIO, LLMBackend.OPENROUTER)


class LLMInterface:
    """One entry point for every supported backend, with cached clients."""

    DEFAULT_MODELS = {
        LLMBackend.OPENAI: "gpt-4o-mini",
        LLMBackend.GEMINI: "gemini-2.0-flash",
        LLMBackend.OLLAMA: "mistral:latest",
        LLMBackend.LM_STUDIO: "local-model",
        LLMBackend.ANTHROPIC: "claude-3-5-sonnet-20241022",
        LLMBackend.OPENROUTER: "openai/gpt-4o-mini",
    }

    DEFAULT_BASE_URLS = {
        LLMBackend.OPENAI: "https://api.openai.com/v1",
        LLMBackend.GEMINI: "https://generativelanguage.googleapis.com",
        LLMBackend.OLLAMA: "http://localhost:11434/v1",
        LLMBackend.LM_STUDIO: "http://localhost:1234/v1",
        LLMBackend.ANTHROPIC: "https://api.anthropic.com",
        LLMBackend.OPENROUTER: "https://openrouter.ai/api/v1",
    }

    KEYLESS_DEFAULTS = {
        LLMBackend.OLLAMA: "ollama",
        LLMBackend.LM_STUDIO: "lm-studio",
    }

    def __init__(self, config=None):
        config = config or CONFIG.llm
        self.backend = self._normalize_backend(config.backend, fallback=LLMBackend.GEMINI)
        self.model_name = config.model_name or self.DEFAULT_MODELS[self.backend]
        self.api_key = config.api_key or ""
        self.base_url = config.base_url or self.DEFAULT_BASE_URLS[self.backend]
        self.temperature = config.temperature
        self.max_tokens = config.max_tokens
        self.timeout = config.timeout
        self.last_error = ""
        self._client_cache: Dict[Tuple[str, str, str], Any] = {}

    @staticmethod
    def _normalize_backend(backend: Any, fallback: LLMBackend) -> LLMBackend:
        if isinstance(backend, LLMBackend):
            return backend
        value = str(backend or "").strip().lower()
        for candidate in LLMBackend:
            if candidate.value == value:
                return candidate
        return fallback

    def apply_runtime_settings(self, settings: Optional[Dict[str, Any]]) -> None:
        """Switch backend/model/credentials at runtime (sidebar settings)."""
        if not settings:
            return

        backend = self._normalize_backend(settings.get("backend"), fallback=self.backend)
        backend_changed = backend != self.backend
        self.backend = backend

        model = settings.get("model_name") or settings.get("model")
        if model:
            self.model_name = model
        elif backend_changed:
            self.model_name = self.DEFAULT_MODELS[backend]

        if "api_key" in settings:
            self.api_key = settings["api_key"] or ""
        base_url = settings.get("base_url")
        if base_url:
            self.base_url = base_url
        elif backend_changed:
            self.base_url = self.DEFAULT_BASE_URLS[backend]

        if "temperature" in settings:
            self.temperature = float(settings["temperature"])
        if "max_tokens" in settings:
            self.max_tokens = int(settings["max_tokens"])
        if "timeout" in settings:
            self.timeout = int(settings["timeout"])

    def _get_client(self, backend: LLMBackend, api_key: str, base_url: str) -> Any:
        """Create or fetch the cached client for a backend."""
        if backend == LLMBackend.GEMINI:
            import google.generativeai as genai
            if not api_key:
                raise ValueError("Gemini requires an API key")
            genai.configure(api_key=api_key)
            return genai

        cache_key = (backend.value, base_url or "", api_key or "")
        if cache_key in self._client_cache:
            return self._client_cache[cache_key]

        if backend in OPENAI_COMPATIBLE:
            from openai import OpenAI
            resolved_key = api_key or self.KEYLESS_DEFAULTS.get(backend, "")
            if not resolved_key:
                raise ValueError(f"{backend.value} backend requires an API key")
            client = OpenAI(api_key=resolved_key, base_url=base_url or self.DEFAULT_BASE_URLS[backend])
        elif backend == LLMBackend.ANTHROPIC:
            if not api_key:
                raise ValueError("Anthropic backend requires an API key")
            from anthropic import Anthropic
            client = Anthropic(api_key=api_key)
        else:
            raise ValueError(f"Unsupported backend: {backend}")

        self._client_cache[cache_key] = client
        return client

    def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        """Send one prompt to the configured backend and return the text reply."""
        temp = self.temperature if temperature is None else temperature
        backend = self.backend
        model_name = model or self.model_name

        try:
            client = self._get_client(backend, self.api_key, self.base_url)

            if backend in OPENAI_COMPATIBLE:
                response = client.chat.completions.create(
                    model=model_name,
                    messages=[
                        {"role": "system", "content": system_prompt or "You are a helpful assistant."},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=temp,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
                return (response.choices[0].message.content or "").strip()

            if backend == LLMBackend.GEMINI:
                # Data first, instructions after.
                full_prompt = f"{prompt}\n\n{system_prompt}" if system_prompt else prompt
                gemini_model = client.GenerativeModel(model_name)
                response = gemini_model.generate_content(
                    full_prompt,
                    generation_config=client.types.GenerationConfig(
                        temperature=temp,
                        max_output_tokens=self.max_tokens,
                    ),
                    request_options={"timeout": self.timeout},
                )
                return (getattr(response, "text", "") or "").strip()

            if backend == LLMBackend.ANTHROPIC:
                response = client.messages.create(
                    model=model_name,
                    max_tokens=self.max_tokens,
                    system=system_prompt or "You are a helpful assistant.",
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temp,
                    timeout=self.timeout,
                )
                return "".join(getattr(block, "text", "") for block in response.content or []).strip()

            raise ValueError(f"Unsupported backend: {backend.value}")

        except Exception as e:
            self.last_error = f"LLM generation failed ({backend.value}/{model_name}): {str(e)}"
            raise RuntimeError(self.last_error) from e

    @staticmethod
    def extract_markdown(text: str) -> str:
        """Return the body of a ```markdown fence when the reply has one, else the reply."""
        if not text:
            return ""
        match = MARKDOWN_FENCE_RE.search(text)
        return match.group(1) if match else text

    def health_check(self) -> bool:
        """Check that the configured backend/model answers."""
        try:
            response = self.generate("Respond only with OK.", temperature=0.0)
            return "ok" in response.lower()
        except Exception:
            return False


# Global LLM instance
llm = LLMInterface()
