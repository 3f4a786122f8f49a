"""
Tests for scenario loading.

Verifies:
- the trips scenario loads with prompt, greeting and tool
- unknown scenario names fall back to the default
- the tool mapping becomes a Gemini function declaration
"""
import pytest
from google.genai import types

from relay_server import instructions
from relay_server.instructions import (
    build_tool_declaration,
    get_greeting_log,
    get_instructions,
    get_scenario,
    get_tool_spec,
    load_scenario,
)
from relay_server.trip_store import OPTIONAL_FIELDS, REQUIRED_FIELDS


def test_trips_scenario_loads():
    scenario = load_scenario("trips")
    assert scenario["name"] == "trips"
    assert scenario["tool"]["name"] == "saveTrip"


def test_instructions_cover_collection_script():
    prompt = get_instructions("trips")
    assert "Italiano" in prompt
    for option in ("Altuglas", "Argos", "Ivan", "Genti", "Adler", "Alfa Laval Olmi", "Casieri", "Cassani"):
        assert option in prompt
    assert "saveTrip" in prompt
    assert "Viaggio creato, vuoi aggiungerne un altro?" in prompt


def test_greeting_log():
    assert get_greeting_log("trips") == "Connected to Gemini"


def test_unknown_scenario_falls_back_to_default():
    assert load_scenario("does-not-exist")["name"] == "trips"


def test_scenario_from_environment(monkeypatch):
    monkeypatch.setenv("RELAY_SCENARIO", "does-not-exist")
    assert get_scenario()["name"] == "trips"


def test_missing_default_raises(monkeypatch, tmp_path):
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)
    with pytest.raises(FileNotFoundError):
        load_scenario("trips")


def test_json_scenario(monkeypatch, tmp_path):
    (tmp_path / "alt.json").write_text(
        '{"name": "alt", "prompt": "Be brief.", "tool": {"name": "saveThing"}}'
    )
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    assert get_instructions("alt") == "Be brief."
    assert get_greeting_log("alt") == "Connected"
    assert get_tool_spec("alt")["name"] == "saveThing"


def test_empty_prompt_rejected(monkeypatch, tmp_path):
    (tmp_path / "empty.yaml").write_text("name: empty\nprompt: '  '\ntool: {name: x}\n")
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    with pytest.raises(ValueError):
        get_instructions("empty")


def test_tool_without_name_rejected(monkeypatch, tmp_path):
    (tmp_path / "notool.yaml").write_text("name: notool\nprompt: hi\n")
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    with pytest.raises(ValueError):
        get_tool_spec("notool")


def test_non_mapping_file_rejected(monkeypatch, tmp_path):
    (tmp_path / "list.yaml").write_text("- a\n- b\n")
    monkeypatch.setattr(instructions, "_get_scenarios_dir", lambda: tmp_path)

    with pytest.raises(ValueError):
        load_scenario("list")


def test_tool_declaration_matches_trip_fields():
    declaration = build_tool_declaration(get_tool_spec("trips"))

    assert isinstance(declaration, types.FunctionDeclaration)
    assert declaration.name == "saveTrip"
    assert declaration.description == "Saves the completed trip details."
    assert declaration.parameters.type == types.Type.OBJECT
    assert set(declaration.parameters.properties) == set(REQUIRED_FIELDS + OPTIONAL_FIELDS)
    assert list(declaration.parameters.required) == list(REQUIRED_FIELDS)
    for schema in declaration.parameters.properties.values():
        assert schema.type == types.Type.STRING
    assert "Altuglas" in declaration.parameters.properties["cliente"].description
