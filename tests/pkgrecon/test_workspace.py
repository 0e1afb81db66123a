"""Tests for workspace root detection."""

from __future__ import annotations

from pkgrecon.engines.version_resolver.models import SourceFile
from pkgrecon.engines.version_resolver.workspace import detect_workspace_roots


def _roots(*paths: str) -> dict[str, str]:
    return detect_workspace_roots([SourceFile(p) for p in paths])


class TestWorkspaceRoots:
    def test_src_index(self):
        assert _roots("navigation/site-kit/src/index.ts") == {"site-kit": "navigation/site-kit"}

    def test_manifest_wins(self):
        roots = _roots("packages/ui/package.json", "other/ui/src/index.ts")
        assert roots["ui"] == "packages/ui"

    def test_direct_index(self):
        assert _roots("libs/utils/index.js")["utils"] == "libs/utils"

    def test_src_dir_is_not_a_name(self):
        assert "src" not in _roots("app/src/index.js")

    def test_src_tree_single_candidate(self):
        assert _roots("packages/core/src/deep/thing.ts")["core"] == "packages/core"

    def test_src_tree_ambiguous_is_dropped(self):
        roots = _roots("a/core/src/x.ts", "b/core/src/y.ts")
        assert "core" not in roots

    def test_subdirectory_index(self):
        assert _roots("shared-ui/auth/index.ts")["shared-ui"] == "shared-ui"

    def test_dependency_tree_ignored(self):
        assert _roots("node_modules/react/index.js", "node_modules/foo/package.json") == {}

    def test_parent_promoted_when_hyphenated(self):
        roots = _roots("design-system/button/index.tsx")
        assert roots["button"] == "design-system/button"
        assert roots["design-system"] == "design-system"

    def test_parent_promoted_with_sibling(self):
        roots = _roots("widgets/chart/index.ts", "widgets/table/index.ts")
        assert roots["widgets"] == "widgets"

    def test_generic_parent_not_promoted(self):
        roots = _roots("src/chart/index.ts", "src/table/index.ts")
        assert "src" not in roots
        assert roots["chart"] == "src/chart"

    def test_plain_parent_without_sibling_not_promoted(self):
        assert "navigation" not in _roots("navigation/site-kit/src/index.ts")
