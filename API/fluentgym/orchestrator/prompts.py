from __future__ import annotations

from fluentgym.schemas.session import LanguageSettings, Personality, Scenario, Turn

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
    "ru": "Russian",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def history_messages(turns: list[Turn]) -> list[dict]:
    return [{"role": turn.role, "content": turn.content} for turn in turns]


def transcript(turns: list[Turn]) -> str:
    return "\n".join(f"{turn.role}: {turn.content}" for turn in turns)


def conversation_instructions(
    scenario: Scenario,
    personality: Personality,
    language: LanguageSettings,
    *,
    gate_seconds: float = 3.0,
) -> str:
    target = language_name(language.target)
    native = language_name(language.native)
    objectives = ", ".join(scenario.objectives) or "hold a natural conversation"
    lines = [
        f"You are {personality.name}, a {personality.tone} conversation partner helping someone practise {target}.",
        "",
        f"SCENARIO: {scenario.title}",
        scenario.description,
        "",
        f"LEARNER LEVEL: {language.proficiency_level}",
        f"OBJECTIVES: {objectives}",
    ]
    if scenario.required_vocabulary:
        lines.append(f"USEFUL VOCABULARY: {', '.join(scenario.required_vocabulary)}")
    if scenario.cultural_notes:
        lines.append(f"CULTURAL NOTES: {'; '.join(scenario.cultural_notes)}")
    lines += [
        "",
        "YOUR ROLE:",
        "- Play the character this scenario calls for and respond as they would in real life.",
        f"- Speak only {target}; switch to {native} only if the learner is completely stuck and asks for help.",
        f"- Match the complexity of your language to a {language.proficiency_level} learner.",
        f"- Speaking speed: {personality.speaking_speed}.",
        f"- The learner is expected to answer within {gate_seconds:g} seconds; keep turns short.",
        "- Do not correct errors explicitly; work the correct form naturally into your reply.",
        "- End every reply with a question or prompt that keeps the conversation moving.",
    ]
    if personality.prompt_modifier:
        lines += ["", "PERSONALITY:", personality.prompt_modifier]
    return "\n".join(lines)


def correction_prompt(utterance: str, target_language: str, proficiency_level: str) -> str:
    return (
        f"Analyze this {language_name(target_language)} message from a {proficiency_level} learner:\n"
        f'"{utterance}"\n\n'
        "Identify ONLY significant errors. Do not be pedantic.\n"
        "Return JSON only, in this format:\n"
        '{"corrections": [{"original": "the incorrect phrase", "corrected": "the correct phrase", '
        '"explanation": "brief explanation", "category": "grammar" | "vocabulary" | "syntax" | "idiom"}]}\n'
        'If there are no significant errors, return {"corrections": []}.'
    )


def objective_prompt(scenario_title: str, objectives: list[str], recent_turns: list[Turn]) -> str:
    numbered = "\n".join(f"{idx + 1}. {objective}" for idx, objective in enumerate(objectives))
    return (
        f'Review this conversation for the scenario "{scenario_title}".\n\n'
        f"OBJECTIVES:\n{numbered}\n\n"
        f"CONVERSATION:\n{transcript(recent_turns)}\n\n"
        "Has the learner completed ALL objectives? Consider whether they used the required "
        "language functions and achieved the scenario's purpose.\n"
        'Respond with JSON only: {"completed": true or false, "rationale": "brief explanation"}'
    )


def feedback_prompt(scenario: Scenario, language: LanguageSettings, turns: list[Turn]) -> str:
    return (
        "Analyze this language practice session.\n\n"
        f"TARGET LANGUAGE: {language_name(language.target)}\n"
        f"LEARNER LEVEL: {language.proficiency_level}\n"
        f"SCENARIO: {scenario.title}\n\n"
        f"CONVERSATION:\n{transcript(turns)}\n\n"
        "Provide feedback as JSON only:\n"
        '{"fluencyScore": 0-100, "strengths": ["..."], "improvements": ["..."], '
        '"vocabularyUsed": <number of unique words the learner used>, "nextSteps": ["..."]}'
    )
