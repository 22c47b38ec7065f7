"""AI routes: tutor, summarizer, quiz generator and study planner."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from agents.quiz_agent import QuizAgent
from agents.study_plan_agent import StudyPlanAgent
from agents.summarizer_agent import SummarizerAgent
from agents.tutor_agent import TutorAgent
from auth import current_session
from extensions import limiter
from schemas import StudyPlanInput, StudyPlanRequest, parse

bp = Blueprint("ai", __name__)

AI_RATE_LIMIT = "30 per hour"


@bp.route("/api/ai/tutor", methods=["POST"])
@login_required
@limiter.limit(AI_RATE_LIMIT)
def tutor():
    response = TutorAgent().run(request.get_json(silent=True) or {})
    return jsonify(response.to_dict())


@bp.route("/api/ai/summarize", methods=["POST"])
@login_required
@limiter.limit(AI_RATE_LIMIT)
def summarize():
    response = SummarizerAgent().run(request.get_json(silent=True) or {})
    return jsonify(response.to_dict())


@bp.route("/api/ai/quiz", methods=["POST"])
@login_required
@limiter.limit(AI_RATE_LIMIT)
def quiz():
    response = QuizAgent().run(request.get_json(silent=True) or {})
    return jsonify(response.to_dict())


@bp.route("/api/ai/study-plan", methods=["POST"])
@login_required
@limiter.limit(AI_RATE_LIMIT)
def study_plan():
    req = parse(StudyPlanRequest, request.get_json(silent=True))
    subjects = current_session().subjects
    titles = [subjects.get(subject_id).title for subject_id in req.subjectIds]
    data = StudyPlanInput(subjectTitles=titles, weeklyHours=req.weeklyHours, deadlines=req.deadlines)
    response = StudyPlanAgent().run(data)
    return jsonify(response.to_dict())
