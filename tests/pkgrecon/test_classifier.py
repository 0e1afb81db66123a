"""Tests for dependency classification and alias resolution."""

from __future__ import annotations

import pytest

from pkgrecon.engines.version_resolver.aliases import apply_aliases, detect_import_aliases
from pkgrecon.engines.version_resolver.classifier import classify_dependencies, detail_for
from pkgrecon.engines.version_resolver.models import (
    DependencyClassification,
    DependencyRecord,
    SourceFile,
)
from pkgrecon.testing import FakeRegistry

# ── TestClassifier ────────────────────────────────────────────────────────


class TestClassifier:
    def test_detail_for(self):
        assert detail_for(True, False).reason == "registry"
        assert detail_for(False, True).reason == "private-registry"
        assert detail_for(False, False).reason == "unknown-internal"
        assert detail_for(None, False).reason == "unknown-external"
        assert detail_for(True, True).source_location == "inside-dependency-tree"

    @pytest.mark.anyio
    async def test_workspace_root_is_internal_even_if_published(self):
        files = [SourceFile("navigation/site-kit/src/index.ts", "export const a = 1;")]
        registry = FakeRegistry({"site-kit": ["1.0.0"], "react": ["18.2.0"]})

        result = await classify_dependencies(["site-kit", "react"], files, registry)

        assert result.internal == {"site-kit"}
        assert result.external == {"react"}
        assert result.details["site-kit"].reason == "workspace"
        assert result.details["site-kit"].source_location == "outside-dependency-tree"
        assert ("package_exists", "site-kit") not in registry.calls

    @pytest.mark.anyio
    async def test_missing_from_registry(self):
        files = [SourceFile("node_modules/@corp/auth/index.js", "")]
        registry = FakeRegistry({})

        result = await classify_dependencies(["@corp/auth", "mystery"], files, registry)

        assert result.internal == {"@corp/auth", "mystery"}
        assert result.details["@corp/auth"].reason == "private-registry"
        assert result.details["mystery"].reason == "unknown-internal"

    @pytest.mark.anyio
    async def test_registry_failure_leans_external(self):
        result = await classify_dependencies(["react"], [], FakeRegistry(fail=True))
        assert result.external == {"react"}
        assert result.details["react"].reason == "unknown-external"

    @pytest.mark.anyio
    async def test_progress_once_per_item(self):
        events = []
        registry = FakeRegistry({"a": ["1.0.0"], "b": ["1.0.0"]})
        await classify_dependencies(
            ["a", "b", "c"], [], registry, concurrency=2, on_progress=events.append
        )
        assert sorted(e.item for e in events) == ["a", "b", "c"]
        assert [e.completed for e in events] == [1, 2, 3]
        assert all(e.total == 3 and e.stage == "classify" for e in events)


# ── TestAliases ───────────────────────────────────────────────────────────


class TestAliases:
    FILES = [
        SourceFile("node_modules/@scope/foo/index.js", "module.exports = {};"),
        SourceFile("src/app.js", "import foo from 'foo'; import React from 'react';"),
        SourceFile("node_modules/react/index.js", ""),
    ]

    def test_detect(self):
        alias_map = detect_import_aliases(self.FILES)
        assert alias_map.aliases == {"foo": "@scope/foo"}
        evidence = alias_map.evidence["foo"]
        assert evidence[0].importing_file == "src/app.js"
        assert evidence[0].resolved_path == "node_modules/@scope/foo/index.js"

    def test_literal_match_is_not_an_alias(self):
        files = [
            SourceFile("node_modules/@scope/foo/index.js", ""),
            SourceFile("node_modules/foo/index.js", ""),
            SourceFile("src/app.js", "import foo from 'foo';"),
        ]
        assert detect_import_aliases(files).aliases == {}

    @pytest.mark.anyio
    async def test_apply_renames_and_classifies(self):
        records = {"foo": DependencyRecord("foo", imported_from=["src/app.js"])}
        classification = DependencyClassification(internal={"foo"})
        registry = FakeRegistry({"@scope/foo": ["2.0.0"]})

        await apply_aliases(
            records, detect_import_aliases(self.FILES), classification, registry, self.FILES
        )

        assert list(records) == ["@scope/foo"]
        assert records["@scope/foo"].name == "@scope/foo"
        assert records["@scope/foo"].is_private is False
        assert "@scope/foo" in classification.external
        assert "foo" not in classification.internal

    @pytest.mark.anyio
    async def test_apply_merges_into_existing_target(self):
        records = {
            "foo": DependencyRecord("foo", imported_from=["src/app.js"]),
            "@scope/foo": DependencyRecord("@scope/foo", imported_from=["src/other.js"]),
        }
        classification = DependencyClassification(external={"foo", "@scope/foo"})
        await apply_aliases(
            records, detect_import_aliases(self.FILES), classification, FakeRegistry(), self.FILES
        )
        assert list(records) == ["@scope/foo"]
        assert records["@scope/foo"].imported_from == ["src/other.js", "src/app.js"]
