import json
import logging
from pathlib import Path
from typing import List, Optional

from app.core.session_models import ClinicalSkill

logger = logging.getLogger("skills")

DEFAULT_PRIORITY = 50


def load_skill(path: Path) -> ClinicalSkill:
    data = json.loads(path.read_text(encoding="utf-8"))

    if not isinstance(data, dict):
        raise ValueError(f"skill file {path.name} must hold a JSON object")

    name = data.get("name")
    triggers = data.get("triggers")
    content = data.get("content")

    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"skill file {path.name} has no name")
    if not isinstance(triggers, list) or not all(isinstance(t, str) for t in triggers):
        raise ValueError(f"skill file {path.name} needs a list of trigger strings")
    if not isinstance(content, str) or not content.strip():
        raise ValueError(f"skill file {path.name} has no content")

    return ClinicalSkill(
        skill_id=path.stem,
        name=name.strip(),
        triggers=[t for t in triggers if t.strip()],
        content=content.strip(),
        priority=int(data.get("priority", DEFAULT_PRIORITY)),
    )


def load_skills(directory: Path) -> List[ClinicalSkill]:
    """
    Load every *.json skill in `directory`, highest priority first.
    A broken file is logged and skipped.
    """
    if not directory.is_dir():
        logger.warning("[SKILLS] Skills directory not found at %s. No skills loaded", directory)
        return []

    skills: List[ClinicalSkill] = []

    for path in sorted(directory.glob("*.json")):
        try:
            skill = load_skill(path)
        except (OSError, ValueError) as e:
            logger.error("[SKILLS] Failed to load %s: %s", path, e)
            continue

        skills.append(skill)
        logger.info(
            "[SKILLS] Loaded %s (%s): %d triggers, priority %d",
            skill.skill_id,
            skill.name,
            len(skill.triggers),
            skill.priority,
        )

    # sort() is stable, so equal priorities keep file order
    skills.sort(key=lambda s: s.priority, reverse=True)
    return skills


def find_matching_skill(skills: List[ClinicalSkill], conversation_text: str) -> Optional[ClinicalSkill]:
    lowered = conversation_text.lower()
    for skill in skills:
        if skill.matches(lowered):
            return skill
    return None
