"""Tests for session-level document edits."""

import json

import pytest

from prestudio.errors import CapacityExceeded, CredentialMissing, MalformedProjectFile, ValidationFailed
from prestudio.models import MAX_CHARACTER_IMAGES
from prestudio.session import ProjectSession

from conftest import png


def test_empty_project_has_three_blank_scenes(session):
    doc = session.present
    assert [s.scene_id for s in doc.scenes] == ["1", "2", "3"]
    assert all(s.script == "" for s in doc.scenes)
    assert doc.characters == []
    assert not session.can_undo


def test_edit_undo_redo_scenario(session):
    first = session.present.scenes[0]
    session.update_scene(first.id, script="Hello")
    assert session.can_undo
    assert len(session.history.past) == 1

    session.undo()
    assert session.present.scenes[0].script == ""

    session.redo()
    assert session.present.scenes[0].script == "Hello"


def test_scene_ids_are_unique_and_not_reused(session):
    removed = session.present.scenes[0].id
    session.remove_scene(removed)
    added = session.add_scene()
    ids = [s.id for s in session.present.scenes]
    assert len(set(ids)) == len(ids)
    assert added.id != removed


def test_update_scene_rejects_ledger_fields(session):
    scene = session.present.scenes[0]
    with pytest.raises(ValidationFailed):
        session.update_scene(scene.id, primary_image=png("x"))
    assert not session.can_undo


def test_update_unknown_scene(session):
    with pytest.raises(ValidationFailed):
        session.update_scene("missing", script="x")


def test_project_fields(session):
    session.rename("Demo")
    session.set_style_prompt("noir")
    session.set_voice("Kore")
    session.set_video_prompt_note("no music")
    doc = session.present
    assert doc.name == "Demo"
    assert doc.content.style_prompt == "noir"
    assert doc.content.selected_voice == "Kore"
    assert doc.content.video_prompt_note == "no music"
    assert len(session.history.past) == 4


def test_first_character_is_default(session):
    first = session.add_character("Lan")
    second = session.add_character("Minh")
    by_id = {c.id: c for c in session.present.characters}
    assert by_id[first.id].is_default
    assert not by_id[second.id].is_default


def test_removing_default_promotes_new_first(session):
    a = session.add_character("A")
    session.add_character("B")
    session.add_character("C")
    session.remove_character(a.id)
    chars = session.present.characters
    assert [c.name for c in chars] == ["B", "C"]
    assert [c.is_default for c in chars] == [True, False]


def test_removing_non_default_keeps_default(session):
    a = session.add_character("A")
    b = session.add_character("B")
    session.remove_character(b.id)
    assert [c.id for c in session.present.characters if c.is_default] == [a.id]


def test_set_default_is_exclusive(session):
    session.add_character("A")
    b = session.add_character("B")
    session.set_default_character(b.id)
    assert [c.is_default for c in session.present.characters] == [False, True]


def test_new_scenes_adopt_default_character(session):
    hero = session.add_character("Hero")
    scene = session.add_scene()
    assert scene.selected_character_ids == [hero.id]


def test_apply_script_lines_grows_scene_list(session):
    hero = session.add_character("Hero")
    session.apply_script_lines(["one", "two", "three", "four", "five"])
    scenes = session.present.scenes
    assert [s.script for s in scenes] == ["one", "two", "three", "four", "five"]
    assert [s.scene_id for s in scenes[3:]] == ["4", "5"]
    assert scenes[3].selected_character_ids == [hero.id]
    assert scenes[0].selected_character_ids == []


def test_apply_script_lines_to_descriptions(session):
    session.apply_script_lines(["a forest"], column="visual_description")
    assert session.present.scenes[0].visual_description == "a forest"


def test_apply_script_lines_unknown_column(session):
    with pytest.raises(ValidationFailed):
        session.apply_script_lines(["x"], column="image_history")


def test_toggle_scene_character(session):
    hero = session.add_character("Hero")
    scene = session.present.scenes[0]
    session.toggle_scene_character(scene.id, hero.id)
    assert session.present.scenes[0].selected_character_ids == [hero.id]
    session.toggle_scene_character(scene.id, hero.id)
    assert session.present.scenes[0].selected_character_ids == []


def test_character_image_capacity(session):
    hero = session.add_character("Hero")
    session.add_character_images(hero.id, [png(str(i)) for i in range(3)])
    before = session.present
    with pytest.raises(CapacityExceeded):
        session.add_character_images(hero.id, [png("a"), png("b"), png("c")])
    assert session.present is before
    session.add_character_images(hero.id, [png("a"), png("b")])
    assert len(session.present.characters[0].image_references) == MAX_CHARACTER_IMAGES


def test_remove_character_image(session):
    hero = session.add_character("Hero")
    session.add_character_images(hero.id, [png("a"), png("b")])
    session.remove_character_image(hero.id, 0)
    assert session.present.characters[0].image_references == [png("b")]
    with pytest.raises(ValidationFailed):
        session.remove_character_image(hero.id, 5)


def test_update_character(session):
    hero = session.add_character("Hero")
    session.update_character(hero.id, description="red scarf")
    assert session.present.characters[0].description == "red scarf"
    with pytest.raises(ValidationFailed):
        session.update_character(hero.id, is_default=False)


def test_load_resets_history(session):
    session.rename("before")
    raw = json.dumps({"name": "loaded", "content": {"scenes": [{"id": "x", "selectedCharacterId": "c1"}]}})
    doc = session.load_bytes(raw)
    assert doc.name == "loaded"
    assert doc.scenes[0].selected_character_ids == ["c1"]
    assert not session.can_undo and not session.can_redo


def test_failed_load_keeps_current_document(session):
    session.rename("keep me")
    before = session.present
    with pytest.raises(MalformedProjectFile):
        session.load_bytes(b"{broken")
    assert session.present is before
    assert session.can_undo


def test_new_project_zeroes_usage_and_history(session):
    from prestudio.cost import TokenUsage
    session.accrue_usage(TokenUsage(10, 20))
    session.new_project()
    assert session.present.usage_stats.total_input_tokens == 0
    assert not session.can_undo


def test_accrue_usage_is_one_undoable_commit(session):
    from prestudio.cost import TokenUsage
    session.accrue_usage(TokenUsage(1000, 500))
    stats = session.present.usage_stats
    assert (stats.total_input_tokens, stats.total_output_tokens) == (1000, 500)
    assert stats.total_cost > 0
    assert len(session.history.past) == 1
    session.undo()
    assert session.present.usage_stats.total_cost == 0


def test_save_and_load_round_trip(session, tmp_path):
    session.rename("Ngày Mới: Part 1")
    path = session.save(tmp_path)
    assert path.name == "ngay-moi-part-1.json"

    other = ProjectSession(credential="")
    other.load_path(path)
    assert other.present == session.present


def test_save_bytes_is_verbatim(session):
    data = json.loads(session.save_bytes())
    assert data["content"]["scenes"][0]["imageHistory"] == []
    assert "usageStats" in data


def test_require_credential():
    with pytest.raises(CredentialMissing):
        ProjectSession(credential="").require_credential()


def test_update_scene_validates_types(session):
    scene = session.present.scenes[0]
    with pytest.raises(ValidationFailed):
        session.update_scene(scene.id, script=["not", "text"])
    assert not session.can_undo


def test_update_scene_collapses_repeated_characters(session):
    a = session.add_character("A")
    b = session.add_character("B")
    scene = session.present.scenes[0]
    session.update_scene(scene.id, selected_character_ids=[a.id, b.id, a.id])
    assert session.present.scenes[0].selected_character_ids == [a.id, b.id]


def test_update_character_validates_types(session):
    hero = session.add_character("Hero")
    with pytest.raises(ValidationFailed):
        session.update_character(hero.id, name=None)
    assert session.present.characters[0].name == "Hero"


def test_import_scenes_replaces_list_with_default_cast(session):
    hero = session.add_character("Hero")
    session.add_character("Extra")
    first = session.present.scenes[0]
    session.update_scene(first.id, script="old")
    past = len(session.history.past)

    session.import_scenes([
        ["C1", "en", "Xin chào", "shot", "a harbour"],
        [None, "only B", "second script"],
        [None, None, "orphan row"],
        ["", "", ""],
        ["7", None, None, None, None],
    ])

    scenes = session.present.scenes
    assert [s.scene_id for s in scenes] == ["C1", "2", "7"]
    assert [s.script for s in scenes] == ["Xin chào", "second script", ""]
    assert scenes[0].visual_description == "a harbour"
    assert all(s.selected_character_ids == [hero.id] for s in scenes)
    assert all(s.image_history == [] and s.primary_image is None for s in scenes)
    assert first.id not in {s.id for s in scenes}
    assert len(session.history.past) == past + 1


def test_import_scenes_without_default_character(session):
    session.import_scenes([["1", None, "hello"]])
    assert session.present.scenes[0].selected_character_ids == []


def test_import_with_no_usable_rows_keeps_project(session):
    before = session.present
    with pytest.raises(ValidationFailed):
        session.import_scenes([[None, None, "x"], []])
    assert session.present is before
