"""Unit tests for the SQLite document store client."""

import asyncio

import pytest

from studioflow.core import db_client
from studioflow.core.db_client import AtomicUpdate, apply_update, join_filters, parse_filter, sanitize_param


@pytest.mark.unit
class TestParseFilter:
    """Filter expressions compile to parameterized SQL."""

    def test_empty_filter(self):
        """Test that an empty filter matches everything."""
        assert parse_filter("") == ("", [])
        assert parse_filter("   ") == ("", [])

    def test_equality_binds_parameter(self):
        """Test that equality values are bound as parameters."""
        sql, params = parse_filter('status = "picked_up"')

        assert sql == "json_extract(data, '$.status') = ?"
        assert params == ["picked_up"]

    def test_or_binds_looser_than_and(self):
        """Test that || has lower precedence than &&."""
        sql, params = parse_filter('a = "1" && b = "2" || c = "3"')

        assert sql == (
            "(json_extract(data, '$.a') = ? AND json_extract(data, '$.b') = ? OR json_extract(data, '$.c') = ?)"
        )
        assert params == ["1", "2", "3"]

    def test_parentheses_group(self):
        """Test that parentheses group conditions."""
        sql, params = parse_filter('a = "1" && (b = "2" || c = "3")')

        assert sql.startswith("json_extract(data, '$.a') = ? AND (")
        assert params == ["1", "2", "3"]

    def test_null_comparisons(self):
        """Test that comparisons with null become IS NULL checks."""
        assert parse_filter("assigned_designer = null")[0] == "json_extract(data, '$.assigned_designer') IS NULL"
        assert parse_filter("completed_at != null")[0] == "json_extract(data, '$.completed_at') IS NOT NULL"

    def test_null_with_ordering_operator_rejected(self):
        """Test that null cannot be used with ordering operators."""
        with pytest.raises(ValueError, match="cannot compare against null"):
            parse_filter("due_date > null")

    def test_booleans_and_numbers(self):
        """Test that boolean and numeric literals are parsed."""
        assert parse_filter("is_read = false")[1] == [0]
        assert parse_filter("is_rework = true")[1] == [1]
        assert parse_filter("star_rate >= 3")[1] == [3]
        assert parse_filter("ratio < 0.5")[1] == [0.5]

    def test_like_escapes_wildcards(self):
        """Test that LIKE patterns escape SQL wildcards."""
        sql, params = parse_filter('task_name ~ "50%_off"')

        assert "LIKE ? ESCAPE" in sql
        assert params == ["%50\\%\\_off%"]

    def test_array_contains(self):
        """Test that the ?= operator checks array membership."""
        sql, params = parse_filter('tags ?= "social"')

        assert "json_each(data, '$.tags')" in sql
        assert params == ["social"]

    def test_escaped_quotes_round_trip_through_sanitize_param(self):
        """Test that values escaped by sanitize_param parse back unchanged."""
        value = 'say "hi" \\ bye'
        _, params = parse_filter(f'task_name = "{sanitize_param(value)}"')

        assert params == [value]

    def test_single_quoted_literal(self):
        """Test that single-quoted literals are accepted."""
        assert parse_filter("team = 'Design'")[1] == ["Design"]

    @pytest.mark.parametrize(
        "query",
        [
            'status = "open" OR 1=1',
            'status = "open"; DROP TABLE tasks',
            "(status = \"open\"",
            'status == "open"',
            'data) = "x"',
        ],
    )
    def test_invalid_syntax_rejected(self, query):
        """Test that malformed filters raise ValueError."""
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            parse_filter(query)

    def test_invalid_field_name_rejected(self):
        """Test that unsafe field names are rejected."""
        with pytest.raises(ValueError):
            parse_filter('status.. = "x"')


@pytest.mark.unit
class TestJoinFilters:
    def test_skips_empty_clauses(self):
        """Test that empty clauses are dropped when joining."""
        assert join_filters("", 'a = "1"', "") == 'a = "1"'

    def test_parenthesizes_each_clause(self):
        """Test that each joined clause is wrapped in parentheses."""
        assert join_filters('a = "1"', 'b = "2" || c = "3"') == '(a = "1") && (b = "2" || c = "3")'

    def test_nothing_to_join(self):
        """Test that joining no clauses yields an empty filter."""
        assert join_filters() == ""


@pytest.mark.unit
class TestApplyUpdate:
    """Update operators applied to an in-memory document."""

    def test_set_unset_and_increment(self):
        """Test that set, unset and increment operators apply."""
        document = {"a": 1, "b": 2, "count": 3}
        result = apply_update(
            document,
            AtomicUpdate(set_fields={"a": 10}, unset_fields=["b"], increments={"count": -1, "fresh": 2}),
        )

        assert result == {"a": 10, "count": 2, "fresh": 2}
        assert document == {"a": 1, "b": 2, "count": 3}

    def test_push_creates_missing_array(self):
        """Test that push creates an absent array."""
        result = apply_update({}, AtomicUpdate(push={"log": [{"n": 1}, {"n": 2}]}))

        assert result["log"] == [{"n": 1}, {"n": 2}]

    def test_add_to_set_skips_existing(self):
        """Test that add-to-set skips values already present."""
        result = apply_update({"designers": ["u1"]}, AtomicUpdate(add_to_set={"designers": ["u1", "u2"]}))

        assert result["designers"] == ["u1", "u2"]

    def test_pull_matches_dict_subset(self):
        """Test that a dict matcher pulls elements containing its pairs."""
        document = {"entries": [{"task_id": "t1", "star_rating": 3}, {"task_id": "t2", "star_rating": 1}]}
        result = apply_update(document, AtomicUpdate(pull={"entries": {"task_id": "t1"}}))

        assert result["entries"] == [{"task_id": "t2", "star_rating": 1}]

    def test_pull_runs_before_push(self):
        """Test that pull is applied before push."""
        document = {"entries": [{"task_id": "t1", "star_rating": 3}]}
        update = AtomicUpdate(
            pull={"entries": {"task_id": "t1"}},
            push={"entries": [{"task_id": "t1", "star_rating": 5}]},
        )

        assert apply_update(document, update)["entries"] == [{"task_id": "t1", "star_rating": 5}]

    def test_increment_non_numeric_rejected(self):
        """Test that incrementing a non-numeric field fails."""
        with pytest.raises(ValueError, match="non-numeric"):
            apply_update({"name": "x"}, AtomicUpdate(increments={"name": 1}))

    def test_push_onto_scalar_rejected(self):
        """Test that pushing onto a scalar field fails."""
        with pytest.raises(ValueError, match="not an array"):
            apply_update({"name": "x"}, AtomicUpdate(push={"name": ["y"]}))

    def test_is_empty(self):
        """Test that an update without operators is empty."""
        assert AtomicUpdate().is_empty()
        assert not AtomicUpdate(unset_fields=["x"]).is_empty()


@pytest.mark.unit
class TestRecordOperations:
    """CRUD against a temporary SQLite file."""

    async def test_create_and_get(self, test_db):
        """Test that a created record can be read back."""
        created = await db_client.create_record(collection="tasks", data={"task_name": "Poster"})

        assert created["id"]
        assert created["created"] == created["updated"]
        assert created["created"].endswith("Z")
        assert await db_client.get_record(collection="tasks", record_id=created["id"]) == created

    async def test_create_keeps_explicit_id(self, test_db):
        """Test that an explicit id is kept on create."""
        created = await db_client.create_record(collection="users", data={"id": "u-1", "full_name": "A"})

        assert created["id"] == "u-1"

    async def test_get_missing_raises_key_error(self, test_db):
        """Test that reading a missing record raises KeyError."""
        with pytest.raises(KeyError):
            await db_client.get_record(collection="tasks", record_id="missing")

    async def test_invalid_collection_name(self, test_db):
        """Test that unsafe collection names are rejected."""
        with pytest.raises(ValueError, match="Invalid collection name"):
            await db_client.get_record(collection="tasks; DROP TABLE users", record_id="x")

    async def test_missing_table_reports_runtime_error(self, test_db):
        """Test that store errors surface as RuntimeError."""
        with pytest.raises(RuntimeError, match="does not exist"):
            await db_client.create_record(collection="ghosts", data={})

    async def test_update_record_merges(self, test_db):
        """Test that update_record merges fields into the document."""
        created = await db_client.create_record(collection="tasks", data={"a": 1, "b": 2})
        updated = await db_client.update_record(collection="tasks", record_id=created["id"], data={"b": 3})

        assert updated["a"] == 1
        assert updated["b"] == 3
        assert updated["updated"] >= created["updated"]

    async def test_update_record_rejects_empty_payload(self, test_db):
        """Test that an empty update payload is rejected."""
        with pytest.raises(ValueError, match="Empty update payload"):
            await db_client.update_record(collection="tasks", record_id="x", data={})

    async def test_delete_record(self, test_db):
        """Test that a deleted record is gone."""
        created = await db_client.create_record(collection="tasks", data={})
        await db_client.delete_record(collection="tasks", record_id=created["id"])

        with pytest.raises(KeyError):
            await db_client.delete_record(collection="tasks", record_id=created["id"])

    async def test_list_filter_sort_and_paginate(self, test_db):
        """Test that listing applies filter, sort and pagination."""
        for index, status in enumerate(["open", "done", "open", "open"]):
            await db_client.create_record(collection="tasks", data={"n": index, "status": status})

        open_tasks = await db_client.list_records(collection="tasks", filter_query='status = "open"', sort="-n")
        assert [task["n"] for task in open_tasks] == [3, 2, 0]

        second_page = await db_client.list_records(collection="tasks", sort="n", page=2, per_page=3)
        assert [task["n"] for task in second_page] == [3]

        assert await db_client.count_records(collection="tasks", filter_query='status != "open"') == 1

    async def test_not_equal_matches_missing_field(self, test_db):
        """Test that != matches documents without the field."""
        await db_client.create_record(collection="tasks", data={"status": "open"})
        await db_client.create_record(collection="tasks", data={})

        assert await db_client.count_records(collection="tasks", filter_query='status != "done"') == 2

    async def test_array_contains_and_like(self, test_db):
        """Test that array membership and LIKE filters work against stored documents."""
        await db_client.create_record(collection="tasks", data={"task_name": "Spring Banner", "tags": ["social"]})
        await db_client.create_record(collection="tasks", data={"task_name": "Logo", "tags": ["brand"]})

        tagged = await db_client.list_all_records(collection="tasks", filter_query='tags ?= "social"')
        searched = await db_client.list_all_records(collection="tasks", filter_query='task_name ~ "banner"')

        assert [task["task_name"] for task in tagged] == ["Spring Banner"]
        assert [task["task_name"] for task in searched] == ["Spring Banner"]

    async def test_invalid_sort_falls_back_to_insertion_order(self, test_db):
        """Test that an invalid sort falls back to insertion order."""
        for n in (2, 1):
            await db_client.create_record(collection="tasks", data={"n": n})

        records = await db_client.list_all_records(collection="tasks", sort="n; DROP TABLE tasks")

        assert [record["n"] for record in records] == [2, 1]

    async def test_get_first_record(self, test_db):
        """Test that get_first_record returns the first match or None."""
        assert await db_client.get_first_record(collection="tasks", filter_query='n = 1') is None
        await db_client.create_record(collection="tasks", data={"n": 1})

        assert (await db_client.get_first_record(collection="tasks", filter_query="n = 1"))["n"] == 1

    async def test_update_records_bulk(self, test_db):
        """Test that update_records changes every matching document."""
        for is_read in (False, False, True):
            await db_client.create_record(collection="notifications", data={"is_read": is_read})

        count = await db_client.update_records(
            collection="notifications",
            filter_query="is_read = false",
            data={"is_read": True},
        )

        assert count == 2
        assert await db_client.count_records(collection="notifications", filter_query="is_read = true") == 3

    async def test_delete_records_requires_filter(self, test_db):
        """Test that bulk delete refuses an empty filter."""
        with pytest.raises(ValueError, match="Refusing to delete"):
            await db_client.delete_records(collection="notifications", filter_query="")

    async def test_delete_records_by_filter(self, test_db):
        """Test that bulk delete removes only matching documents."""
        for expires_at in ("2020-01-01T00:00:00.000000Z", "2099-01-01T00:00:00.000000Z"):
            await db_client.create_record(collection="notifications", data={"expires_at": expires_at})

        deleted = await db_client.delete_records(
            collection="notifications",
            filter_query='expires_at <= "2025-01-01T00:00:00.000000Z"',
        )

        assert deleted == 1
        assert await db_client.count_records(collection="notifications") == 1


@pytest.mark.unit
class TestModifyRecord:
    """Read-modify-write inside one immediate transaction."""

    async def test_applies_operators_and_bumps_updated(self, test_db):
        """Test that modify_record applies operators and bumps updated."""
        created = await db_client.create_record(collection="users", data={"score": 1, "entries": []})

        updated = await db_client.atomic_update(
            collection="users",
            record_id=created["id"],
            update=AtomicUpdate(increments={"score": 2}, push={"entries": ["a"]}),
        )

        assert updated["score"] == 3
        assert updated["entries"] == ["a"]
        assert updated["id"] == created["id"]
        assert await db_client.get_record(collection="users", record_id=created["id"]) == updated

    async def test_none_leaves_document_untouched(self, test_db):
        """Test that returning None leaves the document unchanged."""
        created = await db_client.create_record(collection="users", data={"score": 1})

        result = await db_client.modify_record(collection="users", record_id=created["id"], mutate=lambda _doc: None)

        assert result == created

    async def test_missing_record_raises_key_error(self, test_db):
        """Test that modifying a missing record raises KeyError."""
        with pytest.raises(KeyError):
            await db_client.modify_record(collection="users", record_id="missing", mutate=lambda _doc: AtomicUpdate())

    async def test_mutate_error_rolls_back(self, test_db):
        """Test that an error in mutate rolls the transaction back."""
        created = await db_client.create_record(collection="users", data={"score": 1})

        def explode(_document):
            raise LookupError("boom")

        with pytest.raises(LookupError, match="boom"):
            await db_client.modify_record(collection="users", record_id=created["id"], mutate=explode)

        # Connection is usable again after the rollback
        updated = await db_client.update_record(collection="users", record_id=created["id"], data={"score": 5})
        assert updated["score"] == 5

    async def test_mutate_sees_current_document(self, test_db):
        """Test that mutate receives the document as stored."""
        created = await db_client.create_record(collection="users", data={"entries": [{"task_id": "t1"}]})
        seen = []

        def mutate(document):
            seen.append(document["entries"])
            return AtomicUpdate(pull={"entries": {"task_id": "t1"}})

        updated = await db_client.modify_record(collection="users", record_id=created["id"], mutate=mutate)

        assert seen == [[{"task_id": "t1"}]]
        assert updated["entries"] == []

    async def test_concurrent_increments_are_not_lost(self, test_db):
        """Test that concurrent modifications all apply."""
        created = await db_client.create_record(collection="users", data={"ongoing_tasks": 0})

        await asyncio.gather(
            *(
                db_client.atomic_update(
                    collection="users",
                    record_id=created["id"],
                    update=AtomicUpdate(increments={"ongoing_tasks": 1}),
                )
                for _ in range(20)
            )
        )

        assert (await db_client.get_record(collection="users", record_id=created["id"]))["ongoing_tasks"] == 20
