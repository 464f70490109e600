"""Tests for the Repository data access layer."""

from datetime import datetime, timezone

import pytest

from fork_and_spoon.database.models import (
    RecipeIngredient,
    SyncOperation,
    SyncQueueItem,
    SyncTable,
    parse_timestamp,
)


def _queue_item(item_id, timestamp, retry_count=0):
    return SyncQueueItem(
        id=item_id, table=SyncTable.RECIPES, operation=SyncOperation.UPSERT,
        payload={"id": f"rec-{item_id}"}, timestamp=timestamp,
        retry_count=retry_count,
    )


class TestRecipes:
    def test_insert_and_get(self, repo, make_recipe):
        recipe = make_recipe("Soup", ingredients=["water", "salt"], tags=["easy"])
        repo.insert_recipe(recipe)
        fetched = repo.get_recipe_by_id(recipe.id)
        assert fetched == recipe

    def test_get_missing_returns_none(self, repo):
        assert repo.get_recipe_by_id("nope") is None

    def test_sort_by_title(self, repo, make_recipe):
        for title in ("banana bread", "Apple pie", "carrot cake"):
            repo.insert_recipe(make_recipe(title))
        titles = [r.title for r in repo.get_all_recipes(sort_by="title")]
        assert titles == ["Apple pie", "banana bread", "carrot cake"]

    def test_sort_by_created_newest_first(self, repo, make_recipe):
        repo.insert_recipe(make_recipe("Old", created_at="2024-01-01T00:00:00+00:00"))
        repo.insert_recipe(make_recipe("New", created_at="2024-02-01T00:00:00+00:00"))
        assert [r.title for r in repo.get_all_recipes()] == ["New", "Old"]

    def test_sort_by_last_cooked_never_cooked_first(self, repo, make_recipe):
        repo.insert_recipe(make_recipe("Recent", last_cooked_date="2024-03-01"))
        repo.insert_recipe(make_recipe("Never"))
        repo.insert_recipe(make_recipe("Long ago", last_cooked_date="2023-01-01"))
        titles = [r.title for r in repo.get_all_recipes(sort_by="last_cooked_date")]
        assert titles == ["Never", "Long ago", "Recent"]

    def test_unknown_sort_rejected(self, repo):
        with pytest.raises(ValueError):
            repo.get_all_recipes(sort_by="calories")

    def test_search_matches_title_and_ingredients(self, repo, make_recipe):
        repo.insert_recipe(make_recipe("Tomato Soup"))
        repo.insert_recipe(make_recipe("Salad", ingredients=["cherry tomato"]))
        repo.insert_recipe(make_recipe("Toast"))
        titles = {r.title for r in repo.search_recipes("tomato")}
        assert titles == {"Tomato Soup", "Salad"}

    def test_tags(self, repo, make_recipe):
        repo.insert_recipe(make_recipe("A", tags=["quick", "vegan"]))
        repo.insert_recipe(make_recipe("B", tags=["quick"]))
        assert repo.get_all_tags() == ["quick", "vegan"]
        assert {r.title for r in repo.filter_recipes_by_tag("quick")} == {"A", "B"}
        assert [r.title for r in repo.filter_recipes_by_tag("vegan")] == ["A"]

    def test_update(self, repo, make_recipe):
        recipe = make_recipe("Soup")
        repo.insert_recipe(recipe)
        recipe.title = "Better Soup"
        assert repo.update_recipe(recipe)
        assert repo.get_recipe_by_id(recipe.id).title == "Better Soup"

    def test_update_missing_returns_false(self, repo, make_recipe):
        assert not repo.update_recipe(make_recipe("Ghost"))

    def test_delete_keeps_schedule_entries(self, repo, make_recipe, make_entry):
        recipe = make_recipe()
        repo.insert_recipe(recipe)
        repo.place_schedule_entry(make_entry(recipe.id))
        assert repo.delete_recipe(recipe.id)
        assert not repo.delete_recipe(recipe.id)
        assert repo.schedule_entry_count() == 1

    def test_delete_many(self, repo, make_recipe):
        a, b = make_recipe("A"), make_recipe("B")
        repo.insert_recipe(a)
        repo.insert_recipe(b)
        assert repo.delete_recipes([a.id, "missing", b.id]) == [a.id, b.id]
        assert repo.recipe_count() == 0

    def test_add_tag_skips_recipes_with_tag(self, repo, make_recipe):
        tagged = make_recipe("A", tags=["dinner"])
        plain = make_recipe("B")
        repo.insert_recipe(tagged)
        repo.insert_recipe(plain)
        now = datetime(2024, 3, 4, tzinfo=timezone.utc)
        changed = repo.add_tag_to_recipes([tagged.id, plain.id, "missing"], "dinner", now)
        assert [r.id for r in changed] == [plain.id]
        stored = repo.get_recipe_by_id(plain.id)
        assert stored.tags == ["dinner"]
        assert parse_timestamp(stored.updated_at) == now
        assert repo.get_recipe_by_id(tagged.id).updated_at == tagged.updated_at

    def test_apply_remote_recipes(self, repo, make_recipe):
        keep, gone = make_recipe("Keep"), make_recipe("Gone")
        repo.insert_recipe(keep)
        repo.insert_recipe(gone)
        keep.title = "Kept"
        new = make_recipe("New")
        counts = repo.apply_remote_recipes([keep, new], lambda remote, local: True)
        assert counts == (1, 1, 1)
        assert {r.title for r in repo.get_all_recipes()} == {"Kept", "New"}

    def test_apply_remote_recipes_compares_stored_timestamp(self, repo, make_recipe):
        local = make_recipe("Local", updated_at="2024-03-01T00:00:00.000000+00:00")
        repo.insert_recipe(local)
        incoming = make_recipe("Remote", id=local.id,
                               updated_at="2024-02-01T00:00:00.000000+00:00")
        seen = []

        def is_newer(remote_ts, local_ts):
            seen.append((remote_ts, local_ts))
            return remote_ts > local_ts

        assert repo.apply_remote_recipes([incoming], is_newer) == (0, 0, 0)
        assert seen == [(incoming.updated_at, local.updated_at)]
        assert repo.get_recipe_by_id(local.id).title == "Local"


class TestSchedule:
    def test_place_returns_displaced(self, repo, make_entry):
        first = make_entry("r1")
        assert repo.place_schedule_entry(first) is None
        second = make_entry("r2")
        displaced = repo.place_schedule_entry(second)
        assert displaced.id == first.id
        assert repo.get_entry_for_slot("2024-03-04", "dinner").id == second.id
        assert repo.schedule_entry_count() == 1

    def test_range_is_inclusive(self, repo, make_entry):
        for day in ("2024-03-03", "2024-03-04", "2024-03-10", "2024-03-11"):
            repo.place_schedule_entry(make_entry("r", date=day))
        dates = [e.date for e in repo.get_schedule_entries("2024-03-04", "2024-03-10")]
        assert dates == ["2024-03-04", "2024-03-10"]

    def test_entries_for_date_and_recipe(self, repo, make_entry):
        repo.place_schedule_entry(make_entry("r1", meal_type="lunch"))
        repo.place_schedule_entry(make_entry("r2", meal_type="dinner"))
        repo.place_schedule_entry(make_entry("r1", date="2024-03-05"))
        assert len(repo.get_entries_for_date("2024-03-04")) == 2
        assert [e.date for e in repo.get_entries_by_recipe("r1")] == [
            "2024-03-04", "2024-03-05",
        ]

    def test_swap_keeps_identities(self, repo, make_entry):
        a = make_entry("r1", meal_type="lunch")
        b = make_entry("r2", meal_type="dinner")
        repo.place_schedule_entry(a)
        repo.place_schedule_entry(b)
        first, second = repo.swap_schedule_recipes(a.id, b.id)
        assert (first.id, first.recipe_id) == (a.id, "r2")
        assert (second.id, second.recipe_id) == (b.id, "r1")
        assert repo.get_schedule_entry(a.id).recipe_id == "r2"

    def test_move(self, repo, make_entry):
        source = make_entry("r1")
        repo.place_schedule_entry(source)
        target = make_entry("r1", date="2024-03-06")
        repo.move_schedule_entry(source.id, target)
        assert repo.get_schedule_entry(source.id) is None
        assert repo.get_entry_for_slot("2024-03-06", "dinner").id == target.id

    def test_insert_entries_counts_conflicts(self, repo, make_entry):
        local = make_entry("r1")
        repo.place_schedule_entry(local)
        fresh = make_entry("r2", date="2024-03-05")
        clash = make_entry("r3")
        inserted, conflicts = repo.insert_schedule_entries([local, fresh, clash])
        assert (inserted, conflicts) == (1, 1)
        assert repo.get_entry_for_slot("2024-03-04", "dinner").id == local.id

    def test_delete(self, repo, make_entry):
        entry = make_entry("r1")
        repo.place_schedule_entry(entry)
        assert repo.delete_schedule_entry(entry.id)
        assert not repo.delete_schedule_entry(entry.id)


class TestIngredients:
    def test_save_replaces_and_orders(self, repo, make_recipe):
        recipe = make_recipe()
        repo.insert_recipe(recipe)
        repo.save_recipe_ingredients(recipe.id, [RecipeIngredient(name="old")])
        saved = repo.save_recipe_ingredients(recipe.id, [
            RecipeIngredient(name="flour", quantity=2, unit="cup", raw_text="2 cups flour"),
            RecipeIngredient(name="egg", quantity=1, quantity_max=2, raw_text="1-2 eggs"),
        ])
        assert all(i.id for i in saved)
        stored = repo.get_recipe_ingredients(recipe.id)
        assert [(i.name, i.sort_order) for i in stored] == [("flour", 0), ("egg", 1)]
        assert stored[1].quantity_max == 2

    def test_deleting_recipe_removes_ingredients(self, repo, make_recipe):
        recipe = make_recipe()
        repo.insert_recipe(recipe)
        repo.save_recipe_ingredients(recipe.id, [RecipeIngredient(name="salt")])
        repo.delete_recipe(recipe.id)
        assert repo.get_all_recipe_ingredients() == []


class TestSyncQueue:
    def test_fifo_by_timestamp(self, repo):
        repo.enqueue(_queue_item("late", 2000))
        repo.enqueue(_queue_item("early", 1000))
        assert [i.id for i in repo.get_queue_items()] == ["early", "late"]

    def test_ties_keep_insertion_order(self, repo):
        for item_id in ("a", "b", "c"):
            repo.enqueue(_queue_item(item_id, 1000))
        assert [i.id for i in repo.get_queue_items()] == ["a", "b", "c"]

    def test_payload_round_trip(self, repo):
        repo.enqueue(_queue_item("a", 1))
        item = repo.get_queue_item("a")
        assert item.payload == {"id": "rec-a"}
        assert item.table is SyncTable.RECIPES

    def test_increment_and_delete(self, repo):
        repo.enqueue(_queue_item("a", 1))
        assert repo.increment_retry_count("a") == 1
        assert repo.increment_retry_count("a") == 2
        repo.delete_queue_item("a")
        assert repo.queue_length() == 0
        assert repo.increment_retry_count("a") == 0

    def test_clear(self, repo):
        repo.enqueue(_queue_item("a", 1))
        repo.enqueue(_queue_item("b", 2))
        repo.clear_queue()
        assert repo.queue_length() == 0


class TestBulk:
    def test_restore_snapshot_replaces_everything(self, repo, make_recipe, make_entry):
        repo.insert_recipe(make_recipe("Current"))
        repo.place_schedule_entry(make_entry("x"))
        old = make_recipe("Old")
        repo.restore_snapshot([old], [make_entry(old.id, date="2024-01-01")])
        assert [r.title for r in repo.get_all_recipes()] == ["Old"]
        assert [e.date for e in repo.get_all_schedule_entries()] == ["2024-01-01"]

    def test_replace_recipes_keeps_schedule(self, repo, make_recipe, make_entry):
        repo.insert_recipe(make_recipe("Current"))
        repo.place_schedule_entry(make_entry("x"))
        repo.replace_recipes([make_recipe("Imported")])
        assert [r.title for r in repo.get_all_recipes()] == ["Imported"]
        assert repo.schedule_entry_count() == 1

    def test_add_missing_skips_existing_ids(self, repo, make_recipe, make_entry):
        existing = make_recipe("Existing")
        repo.insert_recipe(existing)
        clone = make_recipe("Changed", id=existing.id)
        added = repo.add_missing([clone, make_recipe("New")], [make_entry("r")])
        assert added == (1, 1)
        assert repo.get_recipe_by_id(existing.id).title == "Existing"
