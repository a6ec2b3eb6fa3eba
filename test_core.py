"""Tests for the record model and dependency fields."""

import pytest

from modmanager.core.model import (COLUMN_ATTRS, COLUMNS, Dependency, ModRecord, ProviderKind,
                                   ResolvedVersion, detect_provider, parse_dependencies,
                                   serialize_dependencies, split_dependencies)


def test_every_column_maps_to_an_attribute():
    assert COLUMN_ATTRS["ID"] == "id"
    assert COLUMN_ATTRS["CurrentVersionUrl"] == "current_version_url"
    assert COLUMN_ATTRS["AvailableGameVersions"] == "available_game_versions"
    row = ModRecord().to_row()
    assert list(row) == COLUMNS
    assert (row["Group"], row["Type"]) == ("required", "mod")


def test_from_row_keeps_unknown_columns():
    record = ModRecord.from_row({"ID": "sodium", "Type": "mod", "Loader": "fabric",
                                 "ApiSource": "modrinth", "Notes": "keep", None: "overflow"})
    assert record.id == "sodium"
    assert record.extras == {"Notes": "keep"}
    assert record.to_row()["Notes"] == "keep"
    assert record.provider is ProviderKind.MODRINTH

    record.set("Notes", "changed")
    record.set("Jar", "sodium.jar")
    assert record.get("Notes") == "changed"
    assert record.jar == "sodium.jar"


@pytest.mark.parametrize("values, expected", [
    ({"ApiSource": "curseforge"}, ProviderKind.CURSEFORGE),
    ({"Host": "api.github.com"}, ProviderKind.GITHUB),
    ({"Url": "https://modrinth.com/mod/sodium"}, ProviderKind.MODRINTH),
    ({"Url": "https://example.com/a.jar"}, ProviderKind.DIRECT),
    ({}, None),
])
def test_provider_detection(values, expected):
    assert ModRecord.from_row(values).provider is expected


def test_setting_source_columns_redetects_provider():
    record = ModRecord.from_row({"ID": "jei", "ApiSource": "modrinth"})

    record.set("ApiSource", "curseforge")
    assert record.provider is ProviderKind.CURSEFORGE

    record.set("ApiSource", "")
    record.set("Url", "https://github.com/owner/mod-jei")
    assert record.provider is ProviderKind.GITHUB

    record.set("Notes", "unrelated")
    assert record.provider is ProviderKind.GITHUB


def test_detect_provider_urls():
    assert detect_provider("https://edge.forgecdn.net/files/1/2/a.jar") is ProviderKind.CURSEFORGE
    assert detect_provider("https://meta.fabricmc.net/v2/versions") is ProviderKind.FABRIC
    assert detect_provider("https://piston-data.mojang.com/v1/objects/x/server.jar") is ProviderKind.MOJANG
    assert detect_provider("not a url") is None
    assert detect_provider(None) is None


def test_record_flags_and_slots():
    server = ModRecord(id="minecraft", type="Server", group="required",
                       next_version="1.21.6", next_version_url="u", next_game_version="1.21.6")
    blocked = ModRecord(id="bad", group="BLOCK")
    assert server.is_infrastructure and not server.is_blocked
    assert blocked.is_blocked
    assert server.slot("next") == {"version": "1.21.6", "url": "u", "game_version": "1.21.6"}
    assert server.key == ModRecord(id="MINECRAFT", type="server").key
    assert ModRecord(id="x", title="X Title").display_name == "X Title"


def test_dependencies_serialize_sorted_and_parse_back():
    deps = [
        Dependency("P7dR8mSH", kind="optional", host="modrinth"),
        Dependency("AANobbMI", file_id="v1", host="modrinth"),
    ]
    text = serialize_dependencies(deps)

    assert text.startswith('[{"ProjectId":"AANobbMI"')
    parsed = parse_dependencies(text)
    assert [d.project_id for d in parsed] == ["AANobbMI", "P7dR8mSH"]
    assert parsed[0].file_id == "v1" and parsed[0].required
    assert not parsed[1].required
    assert serialize_dependencies([]) == ""


def test_parse_legacy_comma_list():
    assert [d.project_id for d in parse_dependencies("fabric-api, cloth-config")] == ["fabric-api", "cloth-config"]
    assert parse_dependencies("") == []
    assert parse_dependencies(None) == []


def test_split_dependencies():
    grouped = split_dependencies([Dependency("a"), Dependency("b", kind="optional")])
    assert [d.project_id for d in grouped["required"]] == ["a"]
    assert [d.project_id for d in grouped["optional"]] == ["b"]


def test_resolved_version_without_game_versions_supports_any():
    assert ResolvedVersion("1.0", "u").supports("1.21.5")
    assert not ResolvedVersion("1.0", "u", game_versions=["1.21.4"]).supports("1.21.5")
