"""Quiz Agent: multiple-choice quizzes from source text."""

from __future__ import annotations

from agents.base import FlowAgent
from errors import FlowError
from schemas import QuizInput, QuizOutput

QUIZ_PROMPT = """You are a helpful assistant that creates educational quizzes. Based on the \
provided source text, generate a multiple-choice quiz with the specified number of questions.

Instructions:
1. Create exactly {num_questions} questions.
2. Each question must have exactly four options.
3. For each question, identify the correct answer and provide its index (0-3).
4. For each question, provide a brief explanation for the correct answer.
5. The questions should be relevant to the key concepts in the source text.
6. The options should be plausible, with one clear correct answer.

Source Text:
---
{source_text}
---"""


class QuizAgent(FlowAgent[QuizInput, QuizOutput]):
    AGENT_NAME = "quiz_agent"
    INPUT_SCHEMA = QuizInput
    OUTPUT_SCHEMA = QuizOutput

    def build_prompt(self, data: QuizInput) -> str:
        return QUIZ_PROMPT.format(num_questions=data.numQuestions, source_text=data.sourceText)

    def run(self, payload):
        response = super().run(payload)
        if not response.output.questions:
            raise FlowError("Model returned an empty quiz")
        return response
