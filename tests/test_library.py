"""Tests for Recents, Profiles, Templates and preset import/export."""
import json
from datetime import date

import pytest

from async_studio.errors import EmptyPromptError, PresetImportError
from async_studio.library import (
    ProfileLibrary,
    RecentPrompts,
    TemplateLibrary,
    export_presets,
    import_presets,
    preset_export_filename,
)
from async_studio.storage import StorageKeys

from conftest import write_raw


class TestRecentPrompts:
    def test_record_prepends(self, store):
        recents = RecentPrompts(store)
        recents.record("first", {})
        recents.record("second", {})
        assert [e.prompt_text for e in recents.list()] == ["second", "first"]

    def test_blank_prompt_is_not_recorded(self, store):
        recents = RecentPrompts(store)
        assert recents.record("   ", {"subject": "cat"}) is None
        assert len(recents) == 0

    def test_duplicate_moves_to_front_and_keeps_name(self, store):
        recents = RecentPrompts(store)
        first = recents.record("cat", {"subject": "cat"})
        recents.rename(first.id, "Kitty")
        recents.toggle_favorite(first.id)
        recents.record("dog", {"subject": "dog"})
        again = recents.record("cat", {"subject": "cat"})
        assert len(recents) == 2
        assert recents.list()[0].id == again.id
        assert again.name == "Kitty"
        assert again.favorite is True

    def test_cap_defaults_to_fifty(self, store):
        recents = RecentPrompts(store)
        for i in range(60):
            recents.record(f"prompt {i}", {})
        assert len(recents) == 50
        assert recents.list()[-1].prompt_text == "prompt 10"

    def test_favorites_survive_eviction(self, store):
        recents = RecentPrompts(store, limit=3)
        keep = recents.record("a", {})
        recents.toggle_favorite(keep.id)
        for text in ("b", "c", "d"):
            recents.record(text, {})
        assert [e.prompt_text for e in recents.list()] == ["d", "c", "a"]

    def test_new_record_is_kept_when_older_entries_are_favorites(self, store):
        recents = RecentPrompts(store, limit=3)
        for text in ("a", "b", "c"):
            recents.toggle_favorite(recents.record(text, {}).id)
        new = recents.record("d", {})
        assert recents.get(new.id) == new
        assert [e.prompt_text for e in recents.list()] == ["d", "c", "b"]

    def test_saved_profile_is_kept_when_older_entries_are_favorites(self, store):
        profiles = ProfileLibrary(store, limit=2)
        for name in ("a", "b"):
            profiles.toggle_favorite(profiles.save(name, {}).id)
        new = profiles.save("c", {})
        assert [p.name for p in profiles.list()] == ["c", "b"]
        assert profiles.get(new.id) == new

    def test_oldest_favorite_goes_when_all_are_favorites(self, store):
        profiles = ProfileLibrary(store, limit=2)
        for name in ("a", "b"):
            profiles.toggle_favorite(profiles.save(name, {}).id)
        profiles.import_entries([{"name": "c", "json": {}, "favorite": True}])
        assert [p.name for p in profiles.list()] == ["c", "b"]

    def test_sorted_puts_named_first(self, store):
        recents = RecentPrompts(store)
        named = recents.record("a", {})
        recents.record("b", {})
        recents.rename(named.id, "Launch")
        assert [e.prompt_text for e in recents.sorted()] == ["a", "b"]

    def test_update_fields(self, store):
        recents = RecentPrompts(store)
        entry = recents.record("a", {})
        updated = recents.update(entry.id, prompt_text="b", structured={"subject": "cat"})
        assert updated.prompt_text == "b"
        assert recents.get(entry.id).structured == {"subject": "cat"}
        with pytest.raises(TypeError):
            recents.update(entry.id, favorite=True)

    def test_unknown_ids(self, store):
        recents = RecentPrompts(store)
        assert recents.rename("missing", "x") is None
        assert recents.toggle_favorite("missing") is None
        assert recents.delete("missing") is False

    def test_every_mutation_is_persisted(self, store):
        recents = RecentPrompts(store)
        entry = recents.record("a", {"subject": "cat"})
        stored = store.get(StorageKeys.RECENTS)
        assert stored[0]["id"] == entry.id
        assert stored[0]["json"] == {"subject": "cat"}
        recents.delete(entry.id)
        assert store.get(StorageKeys.RECENTS) == []

    def test_corrupt_storage_starts_empty(self, store):
        write_raw(store, StorageKeys.RECENTS, "{not json")
        assert RecentPrompts(store).list() == []

    def test_malformed_items_are_skipped(self, store):
        store.set(StorageKeys.RECENTS, [{"id": "1", "prompt": "ok", "json": {}}, {"id": "2"}, "junk"])
        assert [e.id for e in RecentPrompts(store).list()] == ["1"]

    def test_writes_from_another_instance_are_merged(self, store):
        """A second editor on the same store must not overwrite the first one's entries."""
        tab_a = RecentPrompts(store)
        tab_b = RecentPrompts(store)
        tab_a.record("from a", {})
        tab_b.record("from b", {})
        assert [e.prompt_text for e in tab_a.list()] == ["from b", "from a"]


class TestProfilesAndTemplates:
    def test_profile_default_name(self, store):
        profile = ProfileLibrary(store).save("  ", {"subject": "cat"})
        assert profile.name == "Untitled Profile"

    def test_profile_rename_bumps_updated_at(self, store):
        profiles = ProfileLibrary(store)
        profile = profiles.save("Brand", {})
        renamed = profiles.rename(profile.id, "Brand v2")
        assert renamed.name == "Brand v2"
        assert renamed.updated_at >= profile.updated_at

    def test_template_requires_prompt(self, store):
        with pytest.raises(EmptyPromptError):
            TemplateLibrary(store).save("Empty", "   ")

    def test_template_default_name(self, store):
        assert TemplateLibrary(store).save("", "a bright hero shot").name == "Untitled Template"

    def test_presets_cap(self, store):
        profiles = ProfileLibrary(store, limit=200)
        for i in range(205):
            profiles.save(f"p{i}", {})
        assert len(profiles) == 200


class TestPresetFiles:
    def test_export_shape(self, store):
        profiles, templates = ProfileLibrary(store), TemplateLibrary(store)
        profiles.save("Brand", {"style": "bold"})
        templates.save("Hero", "a hero shot")
        doc = json.loads(export_presets(profiles, templates))
        assert set(doc) == {"profiles", "templates"}
        assert set(doc["profiles"][0]) == {"id", "name", "json", "createdAt", "updatedAt", "favorite"}
        assert doc["templates"][0]["prompt"] == "a hero shot"

    def test_import_merges_ahead_of_existing(self, store):
        profiles, templates = ProfileLibrary(store), TemplateLibrary(store)
        profiles.save("Existing", {})
        blob = json.dumps({"profiles": [{"name": "Imported", "json": {"style": "flat"}}], "templates": []})
        counts = import_presets(blob, profiles, templates)
        assert counts.to_dict() == {"profiles": 1, "templates": 0}
        assert [p.name for p in profiles.list()] == ["Imported", "Existing"]

    def test_non_array_member_imports_nothing(self, store):
        profiles, templates = ProfileLibrary(store), TemplateLibrary(store)
        blob = {"profiles": [{"name": "A", "json": {}}], "templates": {"oops": True}}
        counts = import_presets(blob, profiles, templates)
        assert (counts.profiles, counts.templates) == (1, 0)

    def test_non_object_document_imports_nothing(self, store):
        counts = import_presets("[1, 2]", ProfileLibrary(store), TemplateLibrary(store))
        assert (counts.profiles, counts.templates) == (0, 0)

    def test_invalid_json_fails(self, store):
        with pytest.raises(PresetImportError):
            import_presets("{not json", ProfileLibrary(store), TemplateLibrary(store))

    def test_imported_id_replaces_existing(self, store):
        profiles, templates = ProfileLibrary(store), TemplateLibrary(store)
        existing = profiles.save("Old", {})
        blob = {"profiles": [{"id": existing.id, "name": "New", "json": {}}]}
        import_presets(blob, profiles, templates)
        assert [p.name for p in profiles.list()] == ["New"]

    def test_import_respects_cap(self, store):
        profiles, templates = ProfileLibrary(store, limit=2), TemplateLibrary(store)
        blob = {"profiles": [{"name": f"p{i}", "json": {}} for i in range(5)]}
        assert import_presets(blob, profiles, templates).profiles == 5
        assert len(profiles) == 2

    def test_export_filename_uses_date(self):
        assert preset_export_filename(date(2024, 5, 1)) == "imagegen-presets-2024-05-01.json"
