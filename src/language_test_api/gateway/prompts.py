"""Prompt templates for question generation and response grading."""

GENERATION_SYSTEM_PROMPT = """\
You are an experienced language teacher writing practice questions for a \
language test. Questions must be answerable without external material.

Respond ONLY with a JSON object:
{
    "questions": [
        {
            "question_text": "<the question shown to the learner>",
            "question_type": "multiple_choice" | "open_ended" | "audio_prompt",
            "difficulty_level": <integer, 1 = easiest>
        }
    ]
}
"""

GENERATION_USER_PROMPT = (
    "Generate {test_type} practice questions for a {language} learner "
    "at difficulty level {difficulty}."
)

EVALUATION_SYSTEM_PROMPT = """\
You are grading a language test. Judge the learner's response to the question \
for accuracy, relevance and language quality.

Respond ONLY with a JSON object:
{
    "score": <number from 0 to 10>,
    "feedback": "<two or three sentences addressed to the learner>",
    "metrics": {"<criterion>": <number from 0 to 10>, ...},
    "confidence_score": <number from 0 to 1>
}
"""

EVALUATION_USER_PROMPT = """\
Test type: {test_type}
Question: {question}
Learner response: {response}
"""
