"""Study Plan Agent: balanced weekly study sessions across subjects."""

from __future__ import annotations

import json

from agents.base import FlowAgent
from schemas import StudyPlanInput, StudyPlanOutput

PLAN_PROMPT = """You are an expert academic advisor. Create a personalized, balanced weekly \
study plan for a student based on their subjects, available study time, and upcoming deadlines.

Student's Information:
- Subjects: {subjects}
- Total Weekly Study Hours: {weekly_hours}
- Upcoming Deadlines/Exams: {deadlines}

Your Task:
1. Distribute the total weekly study hours across the selected subjects. Give more time to \
demanding subjects and to subjects with upcoming deadlines.
2. Break the study time for each subject into specific, actionable sessions from Monday to Sunday.
3. Give each session a clear topic a college student would plausibly study \
(e.g. "Chapter 3: Kinematics").
4. Assign a day and a realistic time slot (e.g. "10:00 AM - 11:30 AM") to each session and \
spread sessions out to avoid burnout.
5. Describe each session's objective briefly.

The total time of all sessions must not exceed the student's weekly hours."""


class StudyPlanAgent(FlowAgent[StudyPlanInput, StudyPlanOutput]):
    AGENT_NAME = "study_plan_agent"
    INPUT_SCHEMA = StudyPlanInput
    OUTPUT_SCHEMA = StudyPlanOutput

    def build_prompt(self, data: StudyPlanInput) -> str:
        return PLAN_PROMPT.format(
            subjects=json.dumps(data.subjectTitles),
            weekly_hours=data.weeklyHours,
            deadlines=data.deadlines or "None",
        )
