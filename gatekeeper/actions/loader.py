"""Load action classes from a YAML file.

File shape::

    actions:
      - id: report
        name: Submit Report
        window_seconds: 86400
        max_requests: 5
        reward: 5
"""

from pathlib import Path
import yaml

from gatekeeper.actions import ActionClass

DEFAULT_CONFIG = Path(__file__).resolve().parent / "config" / "actions.yml"

_REQUIRED_FIELDS = ("id", "window_seconds", "max_requests")


class ConfiguredAction(ActionClass):
    """An action class defined by configuration rather than code."""

    def __init__(self, definition: dict):
        self.id = definition["id"]
        self.name = definition.get("name", self.id)
        self.window_seconds = definition["window_seconds"]
        self.max_requests = definition["max_requests"]
        self.reward = definition.get("reward", 0)


def load_actions(path: str | Path = DEFAULT_CONFIG) -> list[ConfiguredAction]:
    """Parse *path* and return one ConfiguredAction per entry."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Action config not found: {path}")

    with open(path) as f:
        document = yaml.safe_load(f) or {}

    entries = document.get("actions") if isinstance(document, dict) else None
    if not isinstance(entries, list) or not entries:
        raise ValueError(f"{path.name}: expected a non-empty 'actions' list")

    actions = []
    seen = set()
    for index, definition in enumerate(entries):
        _validate(path, index, definition)
        if definition["id"] in seen:
            raise ValueError(f"{path.name}: duplicate action id '{definition['id']}'")
        seen.add(definition["id"])
        actions.append(ConfiguredAction(definition))
    return actions


def _validate(path: Path, index: int, definition) -> None:
    where = f"{path.name}: actions[{index}]"
    if not isinstance(definition, dict):
        raise ValueError(f"{where}: must be a mapping")

    for field in _REQUIRED_FIELDS:
        if field not in definition:
            raise ValueError(f"{where}: missing required field '{field}'")

    if not isinstance(definition["id"], str) or not definition["id"].strip():
        raise ValueError(f"{where}: 'id' must be a non-empty string")

    for field in ("window_seconds", "max_requests"):
        value = definition[field]
        # bool is an int subclass; 'true' is never a sensible limit
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"{where}: '{field}' must be a positive integer")

    reward = definition.get("reward", 0)
    if isinstance(reward, bool) or not isinstance(reward, int):
        raise ValueError(f"{where}: 'reward' must be an integer")
