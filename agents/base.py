"""Base types shared across all generative flows.

A flow validates its input, renders a prompt, makes a single model call
through ai_resilience, and validates the model's JSON reply against the
flow's output schema. Any failure after input validation is a FlowError.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Optional, TypeVar

from flask import current_app, has_app_context
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ai_resilience import DEFAULT_MODELS, resilient_llm_call
from errors import FlowError
from schemas import parse

logger = logging.getLogger(__name__)

InT = TypeVar("InT", bound=BaseModel)
OutT = TypeVar("OutT", bound=BaseModel)

_API_KEY_SETTINGS = {
    "gemini": "GOOGLE_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


@dataclass
class AgentResponse:
    """Unified response from any flow."""

    output: BaseModel  # Validated model output
    agent: str  # Which flow handled it
    metadata: dict = field(default_factory=dict)  # Cost / latency / cache metrics

    def to_dict(self) -> dict:
        return self.output.model_dump()


def extract_json(text: str) -> str:
    """Pull the JSON object out of a model reply (code fences, stray prose)."""
    text = (text or "").strip()
    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start:end + 1]


def parse_model_output(text: str, schema: type[OutT]) -> OutT:
    try:
        return schema.model_validate_json(extract_json(text))
    except PydanticValidationError as exc:
        logger.warning("Malformed %s from model: %s", schema.__name__, exc.errors()[:3])
        raise FlowError(f"Model returned malformed {schema.__name__}") from exc


class FlowAgent(Generic[InT, OutT]):
    """One typed prompt → JSON contract."""

    AGENT_NAME: ClassVar[str] = "flow"
    INPUT_SCHEMA: ClassVar[type[BaseModel]]
    OUTPUT_SCHEMA: ClassVar[type[BaseModel]]
    SYSTEM: ClassVar[str] = ""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        cache_ttl: Optional[int] = None,
    ) -> None:
        config: dict[str, Any] = current_app.config if has_app_context() else {}
        self.provider = provider or config.get("AI_PROVIDER", "gemini")
        self.model = model or config.get("AI_MODEL") or DEFAULT_MODELS.get(self.provider, "")
        setting = _API_KEY_SETTINGS.get(self.provider, "")
        self.api_key = api_key if api_key is not None else config.get(setting, "")
        self.cache_ttl = cache_ttl if cache_ttl is not None else int(config.get("AI_CACHE_TTL", 0))

    def build_prompt(self, data: InT) -> str:
        raise NotImplementedError

    def _json_instruction(self) -> str:
        schema = json.dumps(self.OUTPUT_SCHEMA.model_json_schema())
        return (
            "\n\nRespond with a single JSON object and nothing else. "
            f"It must validate against this JSON schema:\n{schema}"
        )

    def run(self, payload: dict | InT) -> AgentResponse:
        """Validate input, call the model once, validate the reply."""
        if isinstance(payload, self.INPUT_SCHEMA):
            data = payload
        else:
            data = parse(self.INPUT_SCHEMA, payload)

        prompt = self.build_prompt(data) + self._json_instruction()
        try:
            text, metrics = resilient_llm_call(
                self.provider,
                self.model,
                prompt,
                system=self.SYSTEM,
                api_key=self.api_key,
                cache_ttl=self.cache_ttl,
            )
        except Exception as exc:
            logger.error("%s failed on %s: %s", self.AGENT_NAME, self.provider, exc)
            raise FlowError() from exc

        output = parse_model_output(text, self.OUTPUT_SCHEMA)
        return AgentResponse(output=output, agent=self.AGENT_NAME, metadata=metrics)
