"""JSON prompt catalog for the synthesis collaborator."""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

from brainlift.models.research import WorkflowKind

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    """Dotted-key access to ``string.Template`` prompts, reloaded when the file changes."""

    def __init__(self, path: Path = PROMPTS_PATH):
        self.path = Path(path)
        self._payload: dict[str, Any] | None = None
        self._mtime_ns: int | None = None

    def _load(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._payload is not None and self._mtime_ns == mtime_ns:
            return self._payload
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Prompt catalog {self.path} must be a JSON object.")
        self._payload = payload
        self._mtime_ns = mtime_ns
        return payload

    def template(self, key: str) -> Template:
        node: Any = self._load()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(f"Prompt key not found: {key}")
            node = node[part]
        if not isinstance(node, str):
            raise TypeError(f"Prompt key must map to a string: {key}")
        return Template(node)

    def render(self, key: str, **values: Any) -> str:
        try:
            return self.template(key).substitute(**values)
        except KeyError as exc:
            if str(exc.args[0]).startswith("Prompt key"):
                raise
            raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc

    def missing_kinds(self) -> list[WorkflowKind]:
        section = self._load().get("synthesis", {})
        return [kind for kind in WorkflowKind if kind.value not in section]


catalog = PromptCatalog()


def render_prompt(key: str, **values: Any) -> str:
    return catalog.render(key, **values)
