from typing import List

from app.pipeline.context import SuggestionContext

SYSTEM_PROMPT = """
You are a clinical decision support assistant listening to a live
doctor-patient consultation.

Your task is to give the doctor short, actionable suggestions based on the
conversation so far.

Rules:
- You are assisting a clinician. The clinician makes every decision.
- Use ONLY the conversation, guidelines and patient information provided.
- Do NOT invent patient facts.
- Flag allergies and medication interactions when relevant.
- Prefer fewer, higher-value suggestions (at most 3).
- If there is nothing useful to add, return an empty list.

Speaker labels come from a timing heuristic and may be wrong. If the content
makes it clear a line was said by the other party, reason with the correct
speaker.

Return ONLY valid JSON.
Do NOT include markdown.
Do NOT include explanations.

JSON FORMAT:
{
  "suggestions": [
    {
      "content": "string",
      "type": "clinical | medication | follow_up | differential",
      "urgency": "low | medium | high",
      "confidence": 0.0
    }
  ]
}
""".strip()

CLOSING_INSTRUCTION = "Based on the above, provide your clinical suggestions:"


def build_prompt(context: SuggestionContext) -> str:
    """
    Sections in fixed order; an empty section is left out entirely.
    """
    parts: List[str] = [
        "## Current Conversation",
        context.conversation_text,
    ]

    knowledge = context.knowledge_section()
    if knowledge:
        parts.append(knowledge)

    patient = context.patient_section()
    if patient:
        parts.append(patient)

    if context.skill is not None:
        parts.append(f"## Active Clinical Skill: {context.skill.name}")
        parts.append(context.skill.content)

    parts.append(CLOSING_INSTRUCTION)

    return "\n\n".join(parts)
