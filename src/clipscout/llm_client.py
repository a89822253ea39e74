"""LiteLLM wrapper with text and vision support."""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

import litellm

from .config import TEMPERATURE, MAX_TOKENS, LLM_TIMEOUT, Config

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, str, Path]

# Known LiteLLM provider prefixes that handle their own routing
_KNOWN_PREFIXES = (
    "openai/", "ollama/", "azure/", "gemini/", "anthropic/",
    "xai/", "openrouter/", "groq/", "mistral/", "deepseek/",
    "cohere/", "together_ai/", "vertex_ai/",
)

# Model prefix → env var name (for providers that need it in the env)
_PREFIX_TO_ENV_VAR = {
    "openai/": "OPENAI_API_KEY",
    "anthropic/": "ANTHROPIC_API_KEY",
    "gemini/": "GEMINI_API_KEY",
    "xai/": "XAI_API_KEY",
    "openrouter/": "OPENROUTER_API_KEY",
    "groq/": "GROQ_API_KEY",
    "mistral/": "MISTRAL_API_KEY",
    "deepseek/": "DEEPSEEK_API_KEY",
    "cohere/": "COHERE_API_KEY",
    "together_ai/": "TOGETHER_API_KEY",
}

# Models that don't use a prefix but can be identified by name start
_NAME_TO_ENV_VAR = {
    "gpt": "OPENAI_API_KEY",
    "o3": "OPENAI_API_KEY",
    "o4": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def _detect_env_var(model: str) -> str | None:
    """Detect the correct env var for a model string."""
    for prefix, env_var in _PREFIX_TO_ENV_VAR.items():
        if model.startswith(prefix):
            return env_var
    for name_start, env_var in _NAME_TO_ENV_VAR.items():
        if model.startswith(name_start):
            return env_var
    return None


def _set_provider_key(model: str, api_key: str) -> None:
    """Set API key in the env var LiteLLM reads for the model's provider."""
    env_var = _detect_env_var(model)
    if env_var:
        os.environ[env_var] = api_key


def _prepare_model(model: str, api_base: str | None) -> str:
    """Add openai/ prefix for custom base URLs with unknown model names."""
    if api_base and not any(model.startswith(p) for p in _KNOWN_PREFIXES):
        return f"openai/{model}"
    return model


def _should_pass_api_base(model: str, api_base: str | None) -> bool:
    """Only pass api_base for models that need it."""
    if not api_base:
        return False
    return not model.startswith("openrouter/")


def _image_mime(data: bytes) -> str:
    if data.startswith(b"\x89PNG"):
        return "png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return "jpeg"


def _image_part(image: ImageInput) -> dict:
    """Build an OpenAI-style image_url content part from bytes or a file path."""
    data = image if isinstance(image, bytes) else Path(image).read_bytes()
    b64 = base64.b64encode(data).decode()
    return {
        "type": "image_url",
        "image_url": {"url": f"data:image/{_image_mime(data)};base64,{b64}"},
    }


class LLMClient:
    """Unified LLM client for text generation and vision analysis.

    Supports separate providers/keys for text and vision models.
    """

    def __init__(self, config: Config):
        cfg = config.llm

        # Text model setup
        self.text_model = _prepare_model(cfg.model, cfg.api_base)
        self.text_api_key = cfg.api_key
        self.text_api_base = cfg.api_base

        # Vision model setup (falls back to text credentials if not set)
        vision_api_key = cfg.vision_api_key or cfg.api_key
        vision_api_base = cfg.vision_api_base or cfg.api_base
        self.vision_model = _prepare_model(cfg.vision_model, vision_api_base)
        self.vision_api_key = vision_api_key
        self.vision_api_base = vision_api_base

        if self.text_api_key:
            _set_provider_key(self.text_model, self.text_api_key)
        if self.vision_api_key:
            _set_provider_key(self.vision_model, self.vision_api_key)

        litellm.suppress_debug_info = True
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)
        logging.getLogger("litellm").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def _completion(self, model: str, api_key: str | None,
                    api_base: str | None, messages: list) -> str:
        kwargs = {
            "model": model,
            "messages": messages,
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
            "timeout": LLM_TIMEOUT,
        }
        if api_key:
            kwargs["api_key"] = api_key
        if _should_pass_api_base(model, api_base):
            kwargs["api_base"] = api_base

        response = litellm.completion(**kwargs)
        return response.choices[0].message.content or ""

    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Text-only generation."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return self._completion(
            self.text_model, self.text_api_key, self.text_api_base, messages
        )

    def generate_with_images(
        self,
        prompt: str,
        images: List[ImageInput],
        system_prompt: Optional[str] = None,
    ) -> str:
        """Vision generation with base64-encoded images (raw bytes or paths)."""
        content: list = [{"type": "text", "text": prompt}]
        content.extend(_image_part(img) for img in images)

        messages: list = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content})
        return self._completion(
            self.vision_model, self.vision_api_key, self.vision_api_base, messages
        )

    def generate_json(
        self, prompt: str, system_prompt: Optional[str] = None
    ) -> dict | list:
        """Generate and parse a JSON response, stripping markdown fences."""
        raw = self.generate(prompt, system_prompt=system_prompt)
        return json.loads(self._extract_json(raw))

    @staticmethod
    def _extract_json(text: str) -> str:
        """Strip markdown code fences if present."""
        match = re.search(r"```(?:json)?\s*\n?(.*?)```", text, re.DOTALL)
        if match:
            return match.group(1).strip()
        return text.strip()
