"""Summarizer Agent: condenses long study text."""

from __future__ import annotations

from agents.base import FlowAgent
from schemas import SummarizeInput, SummarizeOutput

SUMMARY_PROMPT = """You are a study assistant. Summarize the text below for a college student \
revising for an exam. Keep the key concepts, definitions and conclusions; drop examples \
and repetition. Use short paragraphs or bullet points.

Text:
---
{text}
---"""


class SummarizerAgent(FlowAgent[SummarizeInput, SummarizeOutput]):
    AGENT_NAME = "summarizer_agent"
    INPUT_SCHEMA = SummarizeInput
    OUTPUT_SCHEMA = SummarizeOutput

    def build_prompt(self, data: SummarizeInput) -> str:
        return SUMMARY_PROMPT.format(text=data.text)
