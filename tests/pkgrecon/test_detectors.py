"""Tests for path and text based version detectors."""

from __future__ import annotations

import json

from pkgrecon.engines.version_resolver.detectors import (
    detect_custom_build,
    detect_version,
    detect_version_from_constants,
    detect_version_from_lockfile_path,
    detect_version_from_sourcemap_path,
    detect_versions,
    extract_versions_from_banners,
    extract_versions_from_bundle_manifest,
    extract_versions_from_manifests,
    load_bundle_manifest,
    match_banner_versions,
    strip_url_content,
)
from pkgrecon.engines.version_resolver.models import SourceFile

# ── paths ─────────────────────────────────────────────────────────────────


class TestPathDetectors:
    def test_pnpm_path(self):
        res = detect_version_from_lockfile_path(
            "node_modules/.pnpm/react@18.2.0/node_modules/react/index.js", "react"
        )
        assert (res.version, res.confidence, res.source) == ("18.2.0", "exact", "lockfile-path")

    def test_yarn_berry_cache(self):
        res = detect_version_from_lockfile_path(
            "node_modules/.yarn/cache/lodash-npm-4.17.21-abc123.zip/node_modules/lodash/x.js",
            "lodash",
        )
        assert res.version == "4.17.21"

    def test_version_directory(self):
        res = detect_version_from_lockfile_path("node_modules/lodash/4.17.21/lodash.js", "lodash")
        assert res.version == "4.17.21"

    def test_other_package_is_ignored(self):
        assert (
            detect_version_from_lockfile_path(
                "node_modules/.pnpm/react@18.2.0/node_modules/react/index.js", "vue"
            )
            is None
        )

    def test_sourcemap_path(self):
        res = detect_version_from_sourcemap_path("node_modules/@mui/material@5.15.0/Button.js", "@mui/material")
        assert (res.version, res.confidence, res.source) == ("5.15.0", "high", "sourcemap-path")


# ── text ──────────────────────────────────────────────────────────────────


class TestTextDetectors:
    def test_version_constant(self):
        res = detect_version_from_constants('var x = 1;\nexports.version = "3.7.1";')
        assert (res.version, res.confidence, res.source) == ("3.7.1", "medium", "version-constant")

    def test_constant_in_tail(self):
        content = "a" * 20000 + 'const VERSION = "2.3.4";'
        assert detect_version_from_constants(content).version == "2.3.4"

    def test_constant_in_middle_is_not_scanned(self):
        content = "a" * 8000 + 'const VERSION = "2.3.4";' + "b" * 8000
        assert detect_version_from_constants(content) is None

    def test_url_version_is_ignored(self):
        content = 'fetch("https://cdn.example.com/lib?version=1.2.3")'
        assert detect_version_from_constants(content) is None
        assert "1.2.3" not in strip_url_content(content)

    def test_custom_build_directory(self):
        files = [SourceFile("vendor/chart-4.4.1/chart.js")]
        res = detect_custom_build("chart", files)
        assert (res.version, res.confidence, res.source) == ("4.4.1", "high", "custom-build")

    def test_custom_build_header(self):
        files = [SourceFile("vendor/chart/dist/chart.js", "/**\n * @version 4.4.1\n */")]
        res = detect_custom_build("chart", files)
        assert (res.version, res.confidence) == ("4.4.1", "medium")

    def test_detect_version_prefers_paths(self):
        files = [
            SourceFile(
                "node_modules/.pnpm/react@18.2.0/node_modules/react/index.js",
                'exports.version = "18.3.0";',
            )
        ]
        assert detect_version("react", files).version == "18.2.0"

    def test_detect_versions_over_tree(self):
        files = [
            SourceFile("node_modules/axios/lib/env/data.js", 'module.exports = { "version": "1.6.2" };'),
            SourceFile("src/app.js", "import axios from 'axios';"),
        ]
        results = detect_versions(["axios", "react"], files)
        assert list(results) == ["axios"]
        assert results["axios"].version == "1.6.2"


# ── manifests ─────────────────────────────────────────────────────────────


class TestManifests:
    def test_dependency_manifests(self):
        files = [
            SourceFile("node_modules/react/package.json", json.dumps({"name": "react", "version": "18.2.0"})),
            SourceFile(
                "node_modules/@mui/material/package.json",
                json.dumps({"name": "@mui/material", "version": "5.15.0"}),
            ),
            SourceFile("node_modules/broken/package.json", "{not json"),
            SourceFile("package.json", json.dumps({"name": "app", "version": "0.0.1"})),
        ]
        assert extract_versions_from_manifests(files) == {
            "react": "18.2.0",
            "@mui/material": "5.15.0",
        }

    def test_bundle_manifest_tags(self):
        bundles = [
            {"files": ["src/app.js", "node_modules/zustand@4.5.0/index.js", 42]},
            {"files": ["node_modules/zustand@4.4.0/index.js", "node_modules/@tanstack/query-core@5.0.0/x.js"]},
            {"files": None},
        ]
        assert extract_versions_from_bundle_manifest(bundles) == {
            "zustand": "4.5.0",
            "@tanstack/query-core": "5.0.0",
        }

    def test_load_bundle_manifest(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps({"bundles": [{"files": []}, "junk"]}))
        assert load_bundle_manifest(path) == [{"files": []}]

    def test_load_malformed_manifest(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text("[1, 2")
        assert load_bundle_manifest(path) == []
        path.write_text(json.dumps({"bundles": "nope"}))
        assert load_bundle_manifest(path) == []
        assert load_bundle_manifest(tmp_path / "missing.json") == []


# ── banners ───────────────────────────────────────────────────────────────


class TestBanners:
    def test_extract_and_match(self):
        files = [
            SourceFile("assets/vendor.js", "/*! lodash v4.17.21 | MIT */\n!function(){}"),
            SourceFile("assets/ui.js", "/**\n * @license react-query v5.17.0\n */"),
        ]
        banners = extract_versions_from_banners(files)
        assert banners["lodash"] == "4.17.21"

        results = match_banner_versions(["lodash", "@tanstack/react-query", "react"], banners)
        assert (results["lodash"].version, results["lodash"].confidence) == ("4.17.21", "high")
        assert results["@tanstack/react-query"].confidence == "medium"
        assert "react" not in results
