import json

from app.config import settings
from app.pipeline.skills import find_matching_skill, load_skills


def write_skill(directory, skill_id, **data):
    (directory / f"{skill_id}.json").write_text(json.dumps(data), encoding="utf-8")


def test_skills_sorted_by_priority(tmp_path):
    write_skill(tmp_path, "low", name="Low", triggers=["cough"], content="low", priority=10)
    write_skill(tmp_path, "default", name="Default", triggers=["cough"], content="default")
    write_skill(tmp_path, "high", name="High", triggers=["cough"], content="high", priority=90)

    skills = load_skills(tmp_path)

    assert [s.skill_id for s in skills] == ["high", "default", "low"]
    assert skills[1].priority == 50


def test_malformed_files_are_skipped(tmp_path):
    write_skill(tmp_path, "good", name="Good", triggers=["fever"], content="check temperature")
    write_skill(tmp_path, "no-content", name="Broken", triggers=["fever"])
    (tmp_path / "not-json.json").write_text("{ nope", encoding="utf-8")

    skills = load_skills(tmp_path)

    assert [s.skill_id for s in skills] == ["good"]


def test_missing_directory_loads_nothing(tmp_path):
    assert load_skills(tmp_path / "missing") == []


def test_highest_priority_match_wins(tmp_path):
    write_skill(tmp_path, "meds", name="Medication Review", triggers=["medication"], content="m", priority=60)
    write_skill(tmp_path, "chest", name="Chest Pain", triggers=["chest pain"], content="c", priority=90)
    skills = load_skills(tmp_path)

    text = "[Patient]: I have CHEST PAIN since I changed my medication"

    assert find_matching_skill(skills, text).skill_id == "chest"
    assert find_matching_skill(skills, "[Patient]: new medication").skill_id == "meds"
    assert find_matching_skill(skills, "[Patient]: I feel fine") is None


def test_bundled_skills_load():
    skills = load_skills(settings.SKILLS_DIR)

    assert {s.skill_id for s in skills} >= {"chest-pain", "medication-review"}
    assert skills[0].skill_id == "chest-pain"
