"""Tests for the CSV database: loading, merging, hashing and writing."""

import csv

import pytest

from conftest import make_row, read_csv, write_csv
from modmanager.core import database as database_module
from modmanager.core.database import (ModDatabase, compute_record_hash, create_database,
                                      load_database, merge_row, write_database)
from modmanager.core.errors import ConfigurationError, DuplicateRecordError
from modmanager.core.model import COLUMNS, ModRecord, ProviderKind


def test_missing_file_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_database(tmp_path / "nope.csv")


def test_load_grows_schema_and_keeps_unknown_columns(tmp_path):
    path = tmp_path / "modlist.csv"
    write_csv(path, [{"Notes": "x", "ID": "sodium", "Loader": "fabric", "ApiSource": "modrinth"}])

    db = load_database(path)

    assert db.columns[:3] == ["Notes", "ID", "Loader"]
    assert set(COLUMNS) <= set(db.columns)
    record = db.records[0]
    assert record.extras == {"Notes": "x"}
    assert record.current_version == ""
    assert record.group == ""
    assert record.provider is ProviderKind.MODRINTH


def test_round_trip_preserves_rows_and_columns(tmp_path, database_file):
    columns_before, rows_before = read_csv(database_file)

    db = load_database(database_file)
    write_database(db)

    columns_after, rows_after = read_csv(database_file)
    assert columns_after == columns_before
    assert rows_after == rows_before


def test_utf8_bom_is_accepted(tmp_path):
    path = tmp_path / "bom.csv"
    path.write_bytes("\ufeffID,Loader\nsodium,fabric\n".encode("utf-8"))
    db = load_database(path)
    assert db.columns[0] == "ID"
    assert db.records[0].id == "sodium"


def test_write_leaves_no_temp_files(tmp_path, database_file):
    db = load_database(database_file)
    write_database(db)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["modlist.csv"]


def _fail(*args, **kwargs):
    raise OSError("disk full")


@pytest.mark.parametrize("target", [
    (csv.DictWriter, "writerows"),
    (database_module.os, "replace"),
])
def test_failed_write_keeps_original_file(tmp_path, database_file, monkeypatch, target):
    before = database_file.read_bytes()
    db = load_database(database_file)
    db.records[0].current_version = "changed"
    monkeypatch.setattr(*target, _fail)

    with pytest.raises(OSError):
        write_database(db)

    assert database_file.read_bytes() == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["modlist.csv"]


def test_create_database_writes_header(tmp_path):
    path = tmp_path / "sub" / "new.csv"
    create_database(path)
    columns, rows = read_csv(path)
    assert columns == COLUMNS
    assert rows == []


class TestMergeRow:

    def test_keeps_order_and_untouched_values(self):
        existing = {"Notes": "n", "ID": "sodium", "CurrentVersion": "1", "RecordHash": ""}
        merged = merge_row(existing, {"CurrentVersion": "2", "Extra": "e"})

        assert list(merged) == ["Notes", "ID", "CurrentVersion", "RecordHash", "Extra"]
        assert merged["Notes"] == "n"
        assert merged["CurrentVersion"] == "2"
        assert existing["CurrentVersion"] == "1"

    def test_recomputes_hash(self):
        merged = merge_row(make_row(ID="sodium"), {"CurrentVersion": "2"})
        assert merged["RecordHash"] == compute_record_hash(merged)

    def test_none_becomes_empty(self):
        assert merge_row({"ID": "a"}, {"Jar": None})["Jar"] == ""


class TestRecordHash:

    def test_ignores_display_columns(self):
        row = make_row(ID="sodium", CurrentVersion="1")
        assert compute_record_hash(row) == compute_record_hash(dict(row, Description="changed"))

    def test_tracks_version_columns(self):
        row = make_row(ID="sodium", CurrentVersion="1")
        assert compute_record_hash(row) != compute_record_hash(dict(row, CurrentVersion="2"))

    def test_ignores_its_own_column(self):
        row = make_row(ID="sodium")
        assert compute_record_hash(row) == compute_record_hash(dict(row, RecordHash="abc"))


class TestModDatabase:

    def test_add_sets_hash_and_rejects_duplicates(self):
        db = ModDatabase()
        record = db.add(ModRecord(id="sodium", loader="fabric"))
        assert record.record_hash == compute_record_hash(record.to_row())

        with pytest.raises(DuplicateRecordError):
            db.add(ModRecord(id="Sodium", loader="FABRIC"))
        # Same ID for another loader is a different record
        db.add(ModRecord(id="sodium", loader="neoforge"))
        assert len(db) == 2

    def test_duplicate_is_value_error(self):
        db = ModDatabase(records=[ModRecord(id="a")])
        with pytest.raises(ValueError):
            db.add(ModRecord(id="a"))

    def test_find_and_remove_keep_other_rows(self):
        db = ModDatabase(records=[ModRecord(id="a"), ModRecord(id="b", loader="fabric"),
                                  ModRecord(id="b", loader="forge"), ModRecord(id="c")])
        assert len(db.find("b")) == 2
        assert len(db.find("b", loader="forge")) == 1

        removed = db.remove("b", loader="forge")

        assert [r.loader for r in removed] == ["forge"]
        assert [(r.id, r.loader) for r in db] == [("a", ""), ("b", "fabric"), ("c", "")]

    def test_replace_keeps_position(self):
        first, second = ModRecord(id="a"), ModRecord(id="b")
        db = ModDatabase(records=[first, second])
        db.replace(first, ModRecord(id="a2"))
        assert [r.id for r in db] == ["a2", "b"]

    def test_rows_cover_every_column(self):
        db = ModDatabase(columns=["ID", "Notes"], records=[ModRecord(id="a", extras={"Notes": "x"})])
        row = db.rows()[0]
        assert list(row) == db.columns
        assert row["Notes"] == "x"
