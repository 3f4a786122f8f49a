"""
Scenario loading: system prompt and completion-tool declaration.

Scenarios are stored as YAML (preferred) or JSON next to this module, in
scenarios/. PyYAML's safe_load parses both.

The trips scenario encodes the whole collection script in the prompt
(client -> driver -> destination -> trip type -> date -> optional origin ->
summary -> confirmation -> saveTrip); the relay itself only validates the
saveTrip arguments.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from google.genai import types


DEFAULT_SCENARIO = "trips"


def _get_scenarios_dir() -> Path:
    return Path(__file__).parent / "scenarios"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Scenario file {path} must contain a mapping at top-level")
        return data


def load_scenario(scenario_name: str) -> Dict[str, Any]:
    """
    Load scenario configuration from YAML or JSON file.

    Resolution order:
    1) <name>.yaml
    2) <name>.yml
    3) <name>.json
    4) the default scenario (trips)

    Raises FileNotFoundError if not even the default exists.
    """
    scenarios_dir = _get_scenarios_dir()

    for name in (scenario_name, DEFAULT_SCENARIO):
        for suffix in (".yaml", ".yml", ".json"):
            candidate = scenarios_dir / f"{name}{suffix}"
            if candidate.exists():
                return _load_file(candidate)

    raise FileNotFoundError(f"No scenario named {scenario_name!r} in {scenarios_dir}")


def get_scenario(name: Optional[str] = None) -> Dict[str, Any]:
    """
    Scenario by explicit name, else RELAY_SCENARIO, else the default.
    """
    return load_scenario(name or os.getenv("RELAY_SCENARIO", DEFAULT_SCENARIO))


def get_instructions(name: Optional[str] = None) -> str:
    """System instruction text for the upstream session."""
    scenario = get_scenario(name)
    prompt = scenario.get("prompt", "")
    if not prompt.strip():
        raise ValueError(f"Scenario {scenario.get('name')!r} has an empty prompt")
    return prompt.strip()


def get_greeting_log(name: Optional[str] = None) -> str:
    """Status line sent to the client when the upstream session opens."""
    return get_scenario(name).get("greeting_log", "Connected")


def get_tool_spec(name: Optional[str] = None) -> Dict[str, Any]:
    """
    The completion tool as a plain mapping:
    {"name", "description", "parameters": {field: {...}}, "required": [...]}
    """
    tool = get_scenario(name).get("tool")
    if not isinstance(tool, dict) or not tool.get("name"):
        raise ValueError("Scenario must declare a tool with a name")
    return tool


def build_tool_declaration(tool: Dict[str, Any]) -> types.FunctionDeclaration:
    """Turn a scenario tool mapping into a Gemini function declaration (all STRING params)."""
    parameters: Dict[str, Any] = tool.get("parameters") or {}
    required: List[str] = list(tool.get("required") or [])

    properties = {}
    for field_name, field_spec in parameters.items():
        description = (field_spec or {}).get("description")
        properties[field_name] = types.Schema(type=types.Type.STRING, description=description)

    return types.FunctionDeclaration(
        name=tool["name"],
        description=tool.get("description", ""),
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties=properties,
            required=required,
        ),
    )
