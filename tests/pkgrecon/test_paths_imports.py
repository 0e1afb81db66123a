"""Tests for path helpers and import collection."""

from __future__ import annotations

from pkgrecon.engines.version_resolver.imports import (
    bare_package_name,
    collect_dependencies,
    package_name,
    regex_import_extractor,
)
from pkgrecon.engines.version_resolver.models import SourceFile
from pkgrecon.engines.version_resolver.paths import (
    dependency_package_from_path,
    dependency_packages,
    get_package_files,
    in_dependency_tree,
    unscoped_name,
)

# ── paths ─────────────────────────────────────────────────────────────────


class TestDependencyPaths:
    def test_in_dependency_tree(self):
        assert in_dependency_tree("node_modules/react/index.js")
        assert in_dependency_tree("app/node_modules/@mui/material/Button.js")
        assert not in_dependency_tree("src/node_modules.js")

    def test_owner_plain_and_scoped(self):
        assert dependency_package_from_path("node_modules/react/index.js") == "react"
        assert dependency_package_from_path("node_modules/@mui/material/index.js") == "@mui/material"
        assert dependency_package_from_path("src/app.js") is None

    def test_owner_is_innermost(self):
        path = "node_modules/jest/node_modules/chalk/index.js"
        assert dependency_package_from_path(path) == "chalk"

    def test_owner_stops_before_version_suffix(self):
        assert dependency_package_from_path("node_modules/react@18.2.0/index.js") == "react"

    def test_pnpm_store_dir_is_skipped(self):
        path = "node_modules/.pnpm/react@18.2.0/node_modules/react/index.js"
        assert dependency_package_from_path(path) == "react"

    def test_dependency_packages_includes_nested(self):
        files = [
            SourceFile("node_modules/jest/index.js"),
            SourceFile("node_modules/jest/node_modules/chalk/index.js"),
            SourceFile("src/app.js"),
        ]
        pkgs = dependency_packages(files)
        assert set(pkgs) == {"jest", "chalk"}
        assert pkgs["chalk"] == ["node_modules/jest/node_modules/chalk/index.js"]
        assert len(pkgs["jest"]) == 2

    def test_unscoped_name(self):
        assert unscoped_name("@scope/foo") == "foo"
        assert unscoped_name("foo") == "foo"


class TestGetPackageFiles:
    def test_dependency_dir_match(self):
        files = [
            SourceFile("node_modules/lodash/lodash.js"),
            SourceFile("node_modules/lodash-es/index.js"),
        ]
        assert [f.path for f in get_package_files(files, "lodash")] == [
            "node_modules/lodash/lodash.js"
        ]

    def test_vendor_chunk_patterns(self):
        files = [
            SourceFile("assets/lodash-Ab12Cd.js"),
            SourceFile("vendor/lodash-4.17.21/lodash.js"),
            SourceFile("vendor/lodash/dist/lodash.min.js"),
            SourceFile("assets/index-Ab12Cd.js"),
        ]
        matched = {f.path for f in get_package_files(files, "lodash")}
        assert matched == {
            "assets/lodash-Ab12Cd.js",
            "vendor/lodash-4.17.21/lodash.js",
            "vendor/lodash/dist/lodash.min.js",
        }

    def test_scoped_uses_base_name_for_vendor_chunks(self):
        files = [SourceFile("assets/material-XyZ123.mjs")]
        assert get_package_files(files, "@mui/material") == files


# ── imports ───────────────────────────────────────────────────────────────


class TestRegexExtractor:
    def test_import_forms(self):
        src = "\n".join(
            [
                "import React from 'react';",
                'import { render } from "react-dom/client";',
                "import './styles.css';",
                "export * from '@mui/material';",
                "const lazy = import('chart.js');",
                "const _ = require('lodash');",
            ]
        )
        assert regex_import_extractor(src, "src/app.js") == [
            "react",
            "react-dom/client",
            "@mui/material",
            "./styles.css",
            "chart.js",
            "lodash",
        ]


class TestBarePackageName:
    def test_package_name(self):
        assert package_name("@scope/pkg/sub/path") == "@scope/pkg"
        assert package_name("pkg/sub") == "pkg"

    def test_rejects_non_packages(self):
        for spec in ("./a", "../b", "/abs", "~/x", "@/components", "#internal", "node:fs",
                     "https://cdn.example.com/x.js", "fs", "path/posix"):
            assert bare_package_name(spec) is None, spec

    def test_accepts_packages(self):
        assert bare_package_name("react-dom/client") == "react-dom"
        assert bare_package_name("@tanstack/react-query") == "@tanstack/react-query"
        assert bare_package_name("lodash.merge") == "lodash.merge"


class TestCollectDependencies:
    def test_one_record_per_package(self):
        files = [
            SourceFile("src/a.js", "import React from 'react'; import x from './x';"),
            SourceFile("src/b.tsx", "import { useState } from 'react'; import 'fs';"),
            SourceFile("src/c.css", "@import 'bootstrap';"),
        ]
        records = collect_dependencies(files)
        assert list(records) == ["react"]
        assert records["react"].imported_from == ["src/a.js", "src/b.tsx"]

    def test_extractor_failure_is_recorded(self):
        def boom(content, path):
            raise ValueError("bad syntax")

        errors: list[str] = []
        records = collect_dependencies([SourceFile("src/a.js", "x")], boom, errors)
        assert records == {}
        assert errors == ["Failed to analyze src/a.js: bad syntax"]
