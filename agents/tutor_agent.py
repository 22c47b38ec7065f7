"""Tutor Agent: answers a student's question, grounded in course material when given."""

from __future__ import annotations

from agents.base import FlowAgent
from schemas import TutorInput, TutorOutput

TUTOR_PROMPT = """You are an AI tutor, skilled at explaining complex topics in simple terms. \
Your goal is to provide a clear and concise answer to the student's question.
{material_block}
Answer the following question to the best of your ability:

Question: {question}"""

MATERIAL_BLOCK = """
Use the following course material as the primary source of information to answer the \
question. Ground your answer in this material.
---
Course Material:
{material}
---
"""


class TutorAgent(FlowAgent[TutorInput, TutorOutput]):
    AGENT_NAME = "tutor_agent"
    INPUT_SCHEMA = TutorInput
    OUTPUT_SCHEMA = TutorOutput

    def build_prompt(self, data: TutorInput) -> str:
        material_block = MATERIAL_BLOCK.format(material=data.courseMaterial) if data.courseMaterial else ""
        return TUTOR_PROMPT.format(material_block=material_block, question=data.question)
