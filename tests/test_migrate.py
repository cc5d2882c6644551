"""Tests for load-time migration."""

import json

import pytest

from prestudio.errors import MalformedProjectFile
from prestudio.migrate import load_document, migrate_document, parse_document
from prestudio.models import DEFAULT_VOICE, ProjectDocument


def _raw(data) -> bytes:
    return json.dumps(data).encode("utf-8")


LEGACY_FILE = {
    "name": "Old project",
    "lastModified": 1700000000000,
    "content": {
        "stylePrompt": "watercolor",
        "scenes": [
            {
                "id": "s1",
                "sceneId": "1",
                "vietnamese": "Xin chao",
                "contextPrompt": "A quiet village",
                "selectedCharacterId": "c1",
                "imageData": "data:image/png;base64,AAAA",
                "isGeneratingAudio": True,
                "lang1": "ignored",
            },
            {
                "id": "s2",
                "sceneId": "2",
                "selectedCharacterId": "none",
                "isGeneratingVideoPrompt": True,
            },
        ],
        "characters": [
            {"id": "c1", "name": "Lan", "description": "", "imageReference": "data:image/png;base64,BBBB", "isDefault": True},
            {"id": "c2", "name": "Minh", "description": "", "isDefault": True},
        ],
    },
}


def test_legacy_single_character_becomes_list():
    doc = load_document(_raw(LEGACY_FILE))
    assert doc.scenes[0].selected_character_ids == ["c1"]


def test_none_sentinel_becomes_empty_selection():
    doc = load_document(_raw(LEGACY_FILE))
    assert doc.scenes[1].selected_character_ids == []


def test_legacy_image_seeds_history_and_primary():
    doc = load_document(_raw(LEGACY_FILE))
    scene = doc.scenes[0]
    assert scene.image_history == ["data:image/png;base64,AAAA"]
    assert scene.primary_image == "data:image/png;base64,AAAA"
    assert doc.scenes[1].image_history == []


def test_browser_edition_keys_are_renamed():
    doc = load_document(_raw(LEGACY_FILE))
    assert doc.scenes[0].script == "Xin chao"
    assert doc.scenes[0].visual_description == "A quiet village"
    assert doc.last_modified_at == 1700000000000


def test_ephemeral_flags_are_dropped():
    data = migrate_document(parse_document(_raw(LEGACY_FILE)))
    for scene in data["content"]["scenes"]:
        assert "isGeneratingAudio" not in scene
        assert "isGeneratingVideoPrompt" not in scene


def test_character_reference_list_and_single_default():
    doc = load_document(_raw(LEGACY_FILE))
    lan, minh = doc.characters
    assert lan.image_references == ["data:image/png;base64,BBBB"]
    assert minh.image_references == []
    assert [c.is_default for c in doc.characters] == [True, False]


def test_missing_sections_get_defaults():
    doc = load_document(_raw({"name": "bare", "content": {}}))
    assert doc.scenes == []
    assert doc.characters == []
    assert doc.content.selected_voice == DEFAULT_VOICE
    assert doc.content.video_prompt_note == ""
    assert doc.usage_stats.total_cost == 0
    assert doc.usage_stats.total_input_tokens == 0


def test_migrating_twice_equals_migrating_once():
    once = migrate_document(parse_document(_raw(LEGACY_FILE)))
    twice = migrate_document(once)
    assert twice == once


def test_reloading_a_saved_document_is_stable():
    doc = load_document(_raw(LEGACY_FILE))
    again = load_document(json.dumps(doc.to_json_dict()))
    assert again == doc


def test_input_is_not_modified():
    data = json.loads(json.dumps(LEGACY_FILE))
    migrate_document(data)
    assert data == LEGACY_FILE


def test_current_format_round_trips():
    doc = ProjectDocument.empty()
    assert load_document(json.dumps(doc.to_json_dict())) == doc


@pytest.mark.parametrize("raw", [b"{not json", b"[1, 2]", b"\xff\xfe", b'{"content": "x"}'])
def test_malformed_files_are_rejected(raw):
    with pytest.raises(MalformedProjectFile):
        load_document(raw)


def test_wrong_field_types_are_rejected():
    with pytest.raises(MalformedProjectFile):
        load_document(_raw({"content": {"scenes": [{"id": "s1", "script": ["not", "text"]}]}}))


def test_non_list_scenes_are_rejected():
    with pytest.raises(MalformedProjectFile):
        load_document(_raw({"content": {"scenes": {"a": 1}}}))


def test_null_fields_fall_back_to_legacy_values():
    doc = load_document(_raw({
        "name": None,
        "lastModified": None,
        "content": {
            "stylePrompt": None,
            "scenes": [{
                "id": "s1",
                "sceneId": None,
                "script": None,
                "vietnamese": "Xin chao",
                "imageData": "data:image/png;base64,AAAA",
                "imageHistory": None,
                "selectedCharacterIds": None,
                "selectedCharacterId": "c1",
            }],
            "characters": [{"id": "c1", "name": None, "imageReferences": None, "isDefault": None}],
        },
    }))

    scene = doc.scenes[0]
    assert scene.image_history == ["data:image/png;base64,AAAA"]
    assert scene.selected_character_ids == ["c1"]
    assert scene.script == "Xin chao"
    assert scene.scene_id == "1"
    assert doc.name == ""
    assert doc.content.style_prompt == ""
    character = doc.characters[0]
    assert character.image_references == []
    assert character.is_default is False


def test_duplicate_cast_entries_collapse_on_load():
    doc = load_document(_raw({"content": {"scenes": [{"id": "s1", "selectedCharacterIds": ["c1", "c2", "c1"]}]}}))
    assert doc.scenes[0].selected_character_ids == ["c1", "c2"]
