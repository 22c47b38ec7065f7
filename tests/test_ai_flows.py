"""Tests for the generative flows and the /api/ai routes."""

import json
import pytest
from unittest.mock import patch

from agents.base import extract_json, parse_model_output
from agents.quiz_agent import QuizAgent
from agents.study_plan_agent import StudyPlanAgent
from agents.summarizer_agent import SummarizerAgent
from agents.tutor_agent import TutorAgent
from errors import FlowError, ValidationError
from schemas import StudyPlanInput, TutorOutput

LONG_TEXT = (
    "Photosynthesis is the process by which green plants use sunlight, water and carbon "
    "dioxide to produce glucose and oxygen. It takes place in the chloroplasts."
)

QUIZ = {
    "questions": [
        {
            "questionText": "Where does photosynthesis take place?",
            "options": ["Mitochondria", "Chloroplasts", "Nucleus", "Ribosome"],
            "correctAnswerIndex": 1,
            "explanation": "Chloroplasts contain chlorophyll.",
        }
    ]
}

PLAN = {
    "plan": [
        {
            "subjectTitle": "Physics",
            "day": "Monday",
            "time": "6:00 PM - 7:30 PM",
            "topic": "Kinematics",
            "description": "Work through chapter 2 problems.",
        }
    ]
}


def _reply(payload):
    return patch(
        "agents.base.resilient_llm_call",
        return_value=(json.dumps(payload), {"cache_hit": False}),
    )


class TestExtractJson:
    def test_plain_object(self):
        assert extract_json('{"answer": "x"}') == '{"answer": "x"}'

    def test_code_fence(self):
        assert extract_json('```json\n{"answer": "x"}\n```') == '{"answer": "x"}'

    def test_surrounding_prose(self):
        assert extract_json('Sure! {"answer": "x"} Hope that helps.') == '{"answer": "x"}'

    def test_strict_types(self):
        with pytest.raises(FlowError):
            parse_model_output('{"answer": 42}', TutorOutput)


class TestFlows:
    def test_tutor_through_gemini(self, app):
        with app.app_context():
            response = TutorAgent().run({"question": "What is photosynthesis?"})
        assert "Photosynthesis" in response.output.answer
        assert response.agent == "tutor_agent"
        assert response.metadata["provider"] == "gemini"

    def test_tutor_includes_course_material(self, app):
        with app.app_context(), _reply({"answer": "ok"}) as call:
            TutorAgent().run({"question": "Explain", "courseMaterial": "Chapter 3 notes"})
        prompt = call.call_args[0][2]
        assert "Chapter 3 notes" in prompt

    def test_summarizer_rejects_short_text(self, app):
        with app.app_context(), _reply({"summary": "x"}) as call:
            with pytest.raises(ValidationError):
                SummarizerAgent().run({"text": "too short"})
        call.assert_not_called()

    def test_summarizer(self, app):
        with app.app_context(), _reply({"summary": "Plants make food from light."}):
            response = SummarizerAgent().run({"text": LONG_TEXT})
        assert response.output.summary == "Plants make food from light."

    def test_quiz(self, app):
        with app.app_context(), _reply(QUIZ):
            response = QuizAgent().run({"sourceText": LONG_TEXT, "numQuestions": 1})
        assert response.output.questions[0].correctAnswerIndex == 1

    def test_quiz_question_count_bounds(self, app):
        with app.app_context():
            with pytest.raises(ValidationError):
                QuizAgent().run({"sourceText": LONG_TEXT, "numQuestions": 11})
            with pytest.raises(ValidationError):
                QuizAgent().run({"sourceText": LONG_TEXT, "numQuestions": 0})

    def test_quiz_with_three_options_is_malformed(self, app):
        bad = {"questions": [{**QUIZ["questions"][0], "options": ["a", "b", "c"]}]}
        with app.app_context(), _reply(bad):
            with pytest.raises(FlowError):
                QuizAgent().run({"sourceText": LONG_TEXT, "numQuestions": 1})

    def test_empty_quiz_is_an_error(self, app):
        with app.app_context(), _reply({"questions": []}):
            with pytest.raises(FlowError):
                QuizAgent().run({"sourceText": LONG_TEXT, "numQuestions": 1})

    def test_study_plan(self, app):
        data = StudyPlanInput(subjectTitles=["Physics"], weeklyHours=5, deadlines="Exam on Friday")
        with app.app_context(), _reply(PLAN) as call:
            response = StudyPlanAgent().run(data)
        assert response.output.plan[0].topic == "Kinematics"
        prompt = call.call_args[0][2]
        assert "Physics" in prompt
        assert "Exam on Friday" in prompt

    def test_provider_failure_becomes_flow_error(self, app):
        with app.app_context(), patch(
            "agents.base.resilient_llm_call", side_effect=RuntimeError("quota exceeded")
        ):
            with pytest.raises(FlowError):
                TutorAgent().run({"question": "Why?"})


class TestAIRoutes:
    def test_requires_login(self, client):
        assert client.post("/api/ai/tutor", json={"question": "Hi"}).status_code == 401

    def test_tutor_route(self, auth_client):
        with _reply({"answer": "Light reactions first."}):
            resp = auth_client.post("/api/ai/tutor", json={"question": "How?"})
        assert resp.status_code == 200
        assert resp.get_json() == {"answer": "Light reactions first."}

    def test_invalid_input_is_400(self, auth_client):
        resp = auth_client.post("/api/ai/summarize", json={"text": "short"})
        assert resp.status_code == 400

    def test_malformed_reply_is_502(self, auth_client):
        with patch("agents.base.resilient_llm_call", return_value=("not json at all", {})):
            resp = auth_client.post("/api/ai/tutor", json={"question": "How?"})
        assert resp.status_code == 502
        assert "error" in resp.get_json()

    def test_quiz_route(self, auth_client):
        with _reply(QUIZ):
            resp = auth_client.post("/api/ai/quiz", json={"sourceText": LONG_TEXT, "numQuestions": 1})
        assert resp.status_code == 200
        assert len(resp.get_json()["questions"]) == 1

    def test_study_plan_resolves_subject_titles(self, auth_client):
        subject = auth_client.post(
            "/api/subjects", json={"title": "Physics", "instructor": "Dr. Curie"}
        ).get_json()["subject"]
        with _reply(PLAN) as call:
            resp = auth_client.post(
                "/api/ai/study-plan",
                json={"subjectIds": [subject["id"]], "weeklyHours": 6},
            )
        assert resp.status_code == 200
        assert resp.get_json()["plan"][0]["subjectTitle"] == "Physics"
        assert "Physics" in call.call_args[0][2]

    def test_study_plan_unknown_subject(self, auth_client):
        resp = auth_client.post(
            "/api/ai/study-plan", json={"subjectIds": ["nope"], "weeklyHours": 6}
        )
        assert resp.status_code == 404

    def test_study_plan_needs_subjects(self, auth_client):
        resp = auth_client.post("/api/ai/study-plan", json={"subjectIds": [], "weeklyHours": 6})
        assert resp.status_code == 400
