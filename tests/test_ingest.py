import pytest

from app.vectorstore.chroma_store import KnowledgeIndex
from app.vectorstore.ingest import (
    chunk_text,
    extract_category,
    has_usable_api_key,
    seed_knowledge_base,
)

from helpers import FakeCollection, fake_embed


def test_short_text_is_one_chunk():
    assert chunk_text("one two three") == ["one two three"]


def test_empty_text_has_no_chunks():
    assert chunk_text("   \n ") == []


def test_chunks_overlap_by_configured_words():
    words = [f"w{i}" for i in range(1000)]

    chunks = chunk_text(" ".join(words), chunk_size=500, chunk_overlap=100)

    # 384 words per chunk, 76 words of overlap, stride 308
    first = chunks[0].split()
    second = chunks[1].split()
    assert len(first) == 384
    assert second[0] == "w308"
    assert first[-76:] == second[:76]
    assert chunks[-1].split()[-1] == "w999"
    assert len(chunks) == 3


def test_overlap_must_be_smaller_than_chunk():
    with pytest.raises(ValueError):
        chunk_text("a b c", chunk_size=100, chunk_overlap=100)


@pytest.mark.parametrize(
    "file_name,expected",
    [
        ("CDC-hypertension.md", "cdc"),
        ("aha-chest-pain.txt", "aha"),
        ("NICE-asthma.md", "nice"),
        ("WHO_malaria.md", None),
        ("notes.md", None),
    ],
)
def test_extract_category(file_name, expected):
    assert extract_category(file_name) == expected


@pytest.mark.parametrize("key", [None, "", "  ", "REPLACE_IN_OVERRIDE", "placeholder-for-dev", "my-placeholder-key"])
def test_placeholder_keys_are_not_usable(key):
    assert not has_usable_api_key(key)


def test_real_key_is_usable():
    assert has_usable_api_key("AIzaSyExampleRealLookingKey")


async def test_seeding_is_idempotent(tmp_path):
    (tmp_path / "AHA-chest-pain.md").write_text("Obtain an ECG within ten minutes.", encoding="utf-8")
    (tmp_path / "CDC-allergy.txt").write_text("Document the reaction type.", encoding="utf-8")
    (tmp_path / "ignored.pdf").write_text("binary", encoding="utf-8")

    collection = FakeCollection()
    index = KnowledgeIndex(collection=collection, embed=fake_embed)

    first = await seed_knowledge_base(index, tmp_path, embed=fake_embed)
    second = await seed_knowledge_base(index, tmp_path, embed=fake_embed)

    assert first == 2
    assert second == 0
    assert {a["metadata"]["category"] for a in collection.added} == {"aha", "cdc"}


async def test_one_bad_file_does_not_stop_the_rest(tmp_path):
    (tmp_path / "a-good.md").write_text("Good content here.", encoding="utf-8")
    (tmp_path / "b-bad.md").write_bytes(b"\xff\xfe\xfa not utf-8")

    collection = FakeCollection()
    index = KnowledgeIndex(collection=collection, embed=fake_embed)

    added = await seed_knowledge_base(index, tmp_path, embed=fake_embed)

    assert added == 1
    assert collection.added[0]["metadata"]["document_name"] == "a-good.md"


async def test_seeding_skipped_without_api_key(tmp_path):
    (tmp_path / "AHA-chest-pain.md").write_text("Obtain an ECG.", encoding="utf-8")
    index = KnowledgeIndex(collection=FakeCollection(), embed=fake_embed)

    assert await seed_knowledge_base(index, tmp_path, api_key="placeholder-for-dev") == 0
    assert await index.count() == 0
