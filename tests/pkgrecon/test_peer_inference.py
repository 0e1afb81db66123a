"""Tests for peer-dependency inference."""

from __future__ import annotations

import pytest

from pkgrecon.engines.version_resolver.models import KnownVersion, PackageMetadata, VersionDetail
from pkgrecon.engines.version_resolver.peer_inference import (
    forward_inference,
    infer_peer_dependency_versions,
    reverse_inference,
)
from pkgrecon.testing import FakeRegistry

KNOWN_REACT = {"react": KnownVersion("react", "18.2.0", "exact")}


def _meta(name: str, versions: dict[str, dict[str, str]]) -> PackageMetadata:
    return PackageMetadata(
        name=name,
        versions={v: VersionDetail(peer_dependencies=p) for v, p in versions.items()},
    )


REACT_DOM = _meta(
    "react-dom",
    {
        "17.0.2": {"react": "17.0.2"},
        "18.2.0": {"react": "^18.2.0"},
        "18.3.1": {"react": "^18.3.1"},
    },
)

# ── forward ───────────────────────────────────────────────────────────────


class TestForwardInference:
    def test_react_dom_from_react(self):
        res = forward_inference(REACT_DOM, KNOWN_REACT)
        assert res is not None
        assert res.version == "18.2.0"
        assert res.confidence == "high"
        assert res.inferred_from_peer_name == "react"
        assert res.peer_range == "^18.2.0"
        assert res.source == "peer-dep"

    def test_prefers_most_specific_range(self):
        meta = _meta(
            "lib",
            {
                "1.0.0": {"react": ">=16.8.0"},
                "2.0.0": {"react": ">=16.8.0"},
                "1.5.0": {"react": "18.2.0"},
            },
        )
        res = forward_inference(meta, KNOWN_REACT)
        assert res.version == "1.5.0"
        assert res.confidence == "exact"
        assert res.top_candidate_versions == ["1.5.0", "2.0.0", "1.0.0"]

    def test_ties_lower_confidence_and_newest_wins(self):
        meta = _meta("lib", {"1.0.0": {"react": "^18.0.0"}, "1.1.0": {"react": "^18.1.0"}})
        res = forward_inference(meta, KNOWN_REACT)
        assert res.version == "1.1.0"
        assert res.confidence == "medium"

    def test_no_satisfied_peer(self):
        meta = _meta("lib", {"1.0.0": {"react": "^17.0.0"}, "2.0.0": {"vue": "^3.0.0"}})
        assert forward_inference(meta, KNOWN_REACT) is None


# ── reverse ───────────────────────────────────────────────────────────────


class TestReverseInference:
    @pytest.mark.parametrize(("count", "expected"), [(1, "high"), (3, "medium"), (5, "low")])
    def test_confidence_by_survivor_count(self, count, expected):
        meta = _meta("lib", {f"1.{i}.0": {"react": ">=16.0.0"} for i in range(count)})
        res = reverse_inference(meta, KNOWN_REACT)
        assert res.confidence == expected
        assert res.version == f"1.{count - 1}.0"
        assert len(res.top_candidate_versions) == min(count, 5)

    def test_contradiction_disqualifies(self):
        meta = _meta(
            "lib",
            {
                "2.0.0": {"react": "^17.0.0", "react-dom": "*"},
                "1.0.0": {"react": ">=16.0.0"},
            },
        )
        known = {**KNOWN_REACT, "react-dom": KnownVersion("react-dom", "18.2.0", "high")}
        res = reverse_inference(meta, known)
        assert res.version == "1.0.0"
        assert res.confidence == "high"

    def test_score_prefers_more_known_peers(self):
        meta = _meta(
            "lib",
            {
                "2.0.0": {"react": ">=16.0.0", "unknown-peer": "^1.0.0"},
                "1.0.0": {"react": ">=16.0.0"},
            },
        )
        res = reverse_inference(meta, KNOWN_REACT)
        assert res.version == "1.0.0"
        assert res.inferred_from_peer_name == "react"

    def test_no_known_peers(self):
        meta = _meta("lib", {"1.0.0": {"vue": "^3.0.0"}})
        assert reverse_inference(meta, KNOWN_REACT) is None


# ── combined ──────────────────────────────────────────────────────────────


class TestCombined:
    @pytest.mark.anyio
    async def test_forward_then_reverse(self):
        registry = FakeRegistry(
            {
                "react-dom": REACT_DOM,
                "widget": _meta("widget", {"3.0.0": {"react": ">=16"}, "3.1.0": {"react": ">=16"}}),
            }
        )
        events = []
        results = await infer_peer_dependency_versions(
            ["react-dom", "widget", "missing"], KNOWN_REACT, registry, on_progress=events.append
        )
        assert results["react-dom"].version == "18.2.0"
        assert results["widget"].version == "3.1.0"
        assert "missing" not in results
        assert [e.item for e in events] == ["react-dom", "widget", "missing"]

    @pytest.mark.anyio
    async def test_nothing_known_skips_registry(self):
        registry = FakeRegistry({"react-dom": REACT_DOM})
        assert await infer_peer_dependency_versions(["react-dom"], {}, registry) == {}
        assert registry.calls == []

    @pytest.mark.anyio
    async def test_metadata_failure_is_not_fatal(self):
        registry = FakeRegistry({"react-dom": REACT_DOM}, fail=True)
        assert await infer_peer_dependency_versions(["react-dom"], KNOWN_REACT, registry) == {}
