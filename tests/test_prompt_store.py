from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from brainlift.services import prompt_store
from brainlift.services.prompt_store import PromptCatalog


def test_bundled_catalog_covers_every_kind():
    assert prompt_store.catalog.missing_kinds() == []


def test_render_substitutes_values():
    rendered = prompt_store.render_prompt("synthesis.experts", purpose="reduce onboarding time", sources="(none)")

    assert "Purpose: reduce onboarding time" in rendered
    assert rendered.rstrip().endswith("(none)")


def test_unknown_key_and_missing_value_raise():
    with pytest.raises(KeyError, match="Prompt key not found"):
        prompt_store.catalog.template("synthesis.unknown")
    with pytest.raises(KeyError, match="Missing template value"):
        prompt_store.catalog.render("synthesis.experts", purpose="x")


def test_catalog_reloads_when_file_changes(tmp_path: Path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"synthesis": {"system_prompt": "first"}}), encoding="utf-8")
    catalog = PromptCatalog(path)
    assert catalog.render("synthesis.system_prompt") == "first"

    path.write_text(json.dumps({"synthesis": {"system_prompt": "second"}}), encoding="utf-8")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000))

    assert catalog.render("synthesis.system_prompt") == "second"
    assert catalog.missing_kinds() == [
        "experts",
        "contrarian_views",
        "knowledge_map",
    ]


def test_catalog_must_be_an_object(tmp_path: Path):
    path = tmp_path / "prompts.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(ValueError):
        PromptCatalog(path).template("synthesis.system_prompt")
