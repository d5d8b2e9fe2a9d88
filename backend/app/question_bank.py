"""Static prompt material and fallback content for the three speaking parts."""

from __future__ import annotations

from typing import Dict, List, Literal

SpeakingPart = Literal[1, 2, 3]

PARTS = (1, 2, 3)

PART_1_QUESTIONS: List[str] = [
    "Do you work or are you a student?",
    "What do you like most about your hometown?",
    "How do you usually spend your weekends?",
    "Do you prefer reading books or watching films?",
    "What kind of music do you enjoy listening to?",
    "Do you like cooking at home?",
    "How often do you use public transport?",
    "What was your favourite subject at school?",
    "Do you enjoy spending time outdoors?",
    "How do you keep in touch with your friends?",
    "Is there a sport you like to play or watch?",
    "Do you like the area where you live now?",
]

PART_2_TOPICS: List[str] = [
    "Describe a memorable trip you have taken",
    "Describe a person who has influenced you",
    "Describe a skill you would like to learn",
    "Describe a book that you enjoyed reading",
    "Describe a place in your city that you like to visit",
    "Describe an important decision you made",
    "Describe a piece of technology you find useful",
    "Describe a celebration you attended",
    "Describe a time you helped someone",
    "Describe a goal you hope to achieve in the future",
]

FALLBACK_QUESTIONS: Dict[int, List[str]] = {
    1: [
        "Tell me about your hometown.",
        "What do you do for work or study?",
        "Do you have any hobbies?",
        "What kind of music do you like?",
        "How do you usually spend your weekends?",
    ],
    2: [
        "Describe a place you like to visit. You should say: where it is, how often you go there, "
        "what you do there, and explain why you like this place.",
        "Describe a person who has influenced you. You should say: who this person is, how you know them, "
        "what they are like, and explain how they have influenced you.",
        "Describe a skill you would like to learn. You should say: what the skill is, why you want to learn it, "
        "how you would learn it, and explain how this skill would help you.",
    ],
    3: [
        "How do you think education will change in the future?",
        "What are the advantages and disadvantages of modern technology?",
        "How important is it to preserve traditional culture?",
    ],
}

FALLBACK_MODEL_ANSWERS: Dict[int, str] = {
    1: (
        "Well, I'd say my hometown is quite interesting. It's a medium-sized city with a good mix of "
        "modern facilities and traditional culture. What I particularly enjoy about it is the friendly "
        "atmosphere, because people are generally quite welcoming and helpful."
    ),
    2: (
        "I'd like to talk about a trip I took to the mountains last year. I went there with my close "
        "friends during the summer holidays. We spent most of our time hiking through the scenic trails "
        "and exploring the local villages. What made this journey so memorable was the breathtaking "
        "views and the sense of achievement."
    ),
    3: (
        "I think this is quite a complex issue with several important aspects to consider. On one hand, "
        "there are certainly some significant benefits, such as improved efficiency and convenience. "
        "However, we also need to be aware of potential drawbacks and find the right balance."
    ),
}

FALLBACK_FEEDBACK = (
    "Your response shows good effort. Focus on expanding your ideas with more details and examples."
)

FALLBACK_SUGGESTIONS: List[str] = [
    "Try to speak for longer periods",
    "Use more varied vocabulary",
    "Practice connecting your ideas smoothly",
]

FALLBACK_SCORE = 6.0

ANSWER_STRUCTURES: Dict[int, str] = {
    1: "Answer -> Reason -> Example (30-40 seconds)",
    2: "Intro -> Details -> Feelings -> Reflection (about 2 minutes)",
    3: "Point -> Explain -> Example (30-50 seconds)",
}


def require_part(part: int) -> int:
    if part not in PARTS:
        raise ValueError(f"Speaking part must be 1, 2 or 3 (got {part!r}).")
    return part


def fallback_question(part: int, index: int) -> str:
    questions = FALLBACK_QUESTIONS[require_part(part)]
    return questions[index % len(questions)]


def fallback_model_answer(part: int) -> str:
    return FALLBACK_MODEL_ANSWERS[require_part(part)]


__all__ = [
    "ANSWER_STRUCTURES",
    "FALLBACK_FEEDBACK",
    "FALLBACK_MODEL_ANSWERS",
    "FALLBACK_QUESTIONS",
    "FALLBACK_SCORE",
    "FALLBACK_SUGGESTIONS",
    "PARTS",
    "PART_1_QUESTIONS",
    "PART_2_TOPICS",
    "SpeakingPart",
    "fallback_model_answer",
    "fallback_question",
    "require_part",
]
