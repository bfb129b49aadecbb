# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for DependencyGraph construction, indices and collision policies."""

import pytest

from lockprune.codec import parse_lockfile
from lockprune.errors import NameCollisionError
from lockprune.graph import DependencyGraph
from lockprune.models import CollisionPolicy
from lockprune.reachability import closure


def _duplicated_lockfile(make_lockfile):
    # Two versions of syn, referenced the way Cargo writes them
    return make_lockfile(
        [
            ("app", "0.1.0", ["old-derive", "syn 2.0.79"]),
            ("old-derive", "0.1.0", ["syn 1.0.109"]),
            ("syn", "1.0.109", ["proc-macro2"]),
            ("syn", "2.0.79", ["proc-macro2"]),
            ("proc-macro2", "1.0.86", []),
        ]
    )


class TestBuild:
    """Tests for building the graph from parsed records."""

    def test_nodes_indexed_by_name(self, sample_lockfile_text):
        graph = DependencyGraph.build(parse_lockfile(sample_lockfile_text).records)
        assert len(graph) == 21
        assert "tokio" in graph
        assert graph.get_record("tokio").version == "1.40.0"
        assert graph.get_record("missing") is None

    def test_unusable_records_excluded(self):
        text = (
            '[[package]]\nversion = "1"\n\n'
            '[[package]]\nname = "noversion"\n\n'
            '[[package]]\nname = "ok"\nversion = "1"\ndependencies = [\n "noversion",\n]\n'
        )
        graph = DependencyGraph.build(parse_lockfile(text).records)
        assert graph.all_names() == frozenset({"ok"})
        # The edge to the unusable record is dangling
        assert graph.dependents("noversion") == frozenset()
        assert graph.dangling_references() == [("ok", "noversion")]

    def test_unknown_policy_rejected(self, sample_lockfile_text):
        records = parse_lockfile(sample_lockfile_text).records
        with pytest.raises(ValueError):
            DependencyGraph.build(records, collision_policy="whatever")

    def test_nodes_view_is_read_only(self, make_graph):
        graph = make_graph({"a": []})
        with pytest.raises(TypeError):
            graph.nodes["b"] = graph.nodes["a"]  # type: ignore[index]


class TestIndices:
    """Tests for forward and reverse edge queries."""

    def test_direct_deps_preserve_order_and_duplicates(self, make_graph):
        graph = make_graph({"a": ["c", "b", "c"], "b": [], "c": []})
        assert graph.direct_deps("a") == ("c", "b", "c")

    def test_direct_deps_of_missing_name(self, make_graph):
        graph = make_graph({"a": []})
        assert graph.direct_deps("zzz") == ()

    def test_dependents(self, sample_lockfile_text):
        graph = DependencyGraph.build(parse_lockfile(sample_lockfile_text).records)
        assert graph.dependents("bytes") == frozenset(
            {"actix-web", "actix-web-actors", "actix", "tokio", "sqlx-core"}
        )
        assert graph.fan_in("bytes") == 5
        assert graph.dependents("app") == frozenset()

    def test_duplicate_edges_count_once_in_fan_in(self, make_graph):
        graph = make_graph({"a": ["b", "b"], "b": []})
        assert graph.fan_in("b") == 1

    def test_dependents_of_missing_name(self, make_graph):
        graph = make_graph({"a": []})
        assert graph.dependents("nope") == frozenset()

    def test_dangling_references_tolerated(self, make_graph):
        graph = make_graph({"a": ["ghost", "b"], "b": []})
        assert graph.direct_deps("a") == ("ghost", "b")
        assert "ghost" not in graph
        assert graph.dependents("ghost") == frozenset()
        assert graph.dangling_references() == [("a", "ghost")]

    def test_reverse_index_matches_forward_edges(self, sample_lockfile_text):
        graph = DependencyGraph.build(parse_lockfile(sample_lockfile_text).records)
        for name in graph.all_names():
            for dependent in graph.dependents(name):
                assert name in graph.direct_deps(dependent)
            for dep in graph.direct_deps(name):
                if dep in graph:
                    assert name in graph.dependents(dep)

    def test_validate_graph(self, sample_lockfile_text):
        graph = DependencyGraph.build(parse_lockfile(sample_lockfile_text).records)
        is_valid, errors = graph.validate_graph()
        assert is_valid
        assert errors == []

    def test_self_dependency(self, make_graph):
        graph = make_graph({"a": ["a"]})
        assert graph.dependents("a") == frozenset({"a"})


class TestCollisionPolicies:
    """Tests for duplicate package names."""

    def test_versioned_keys(self, make_lockfile):
        records = parse_lockfile(_duplicated_lockfile(make_lockfile)).records
        graph = DependencyGraph.build(records, CollisionPolicy.VERSIONED)
        assert "syn" not in graph
        assert "syn 1.0.109" in graph
        assert "syn 2.0.79" in graph
        assert graph.direct_deps("app") == ("old-derive", "syn 2.0.79")
        assert graph.dependents("syn 1.0.109") == frozenset({"old-derive"})
        assert graph.dependents("proc-macro2") == frozenset({"syn 1.0.109", "syn 2.0.79"})

    def test_versioned_records_collision(self, make_lockfile, caplog):
        records = parse_lockfile(_duplicated_lockfile(make_lockfile)).records
        graph = DependencyGraph.build(records, CollisionPolicy.VERSIONED)
        assert len(graph.collisions) == 1
        collision = graph.collisions[0]
        assert collision.name == "syn"
        assert collision.versions == ("1.0.109", "2.0.79")
        assert collision.keys == ("syn 1.0.109", "syn 2.0.79")
        assert any("appears 2 times" in message for message in caplog.messages)

    def test_versioned_bare_reference_to_collided_name_dangles(self, make_lockfile):
        text = make_lockfile(
            [("a", "1", ["dup"]), ("dup", "1", []), ("dup", "2", [])]
        )
        graph = DependencyGraph.build(parse_lockfile(text).records, CollisionPolicy.VERSIONED)
        assert graph.dangling_references() == [("a", "dup")]

    def test_versioned_same_version_keyed_by_source(self):
        git = "git+https://github.com/org/foo#abc123"
        registry = "registry+https://github.com/rust-lang/crates.io-index"
        text = (
            "version = 3\n\n"
            '[[package]]\nname = "app"\nversion = "0.1.0"\ndependencies = [\n'
            f' "foo 1.0.0 ({git})",\n'
            f' "foo 1.0.0 ({registry})",\n'
            "]\n\n"
            f'[[package]]\nname = "foo"\nversion = "1.0.0"\nsource = "{git}"\n\n'
            f'[[package]]\nname = "foo"\nversion = "1.0.0"\nsource = "{registry}"\n'
        )
        document = parse_lockfile(text)
        graph = DependencyGraph.build(document.records, CollisionPolicy.VERSIONED)
        git_key = f"foo 1.0.0 ({git})"
        registry_key = f"foo 1.0.0 ({registry})"
        assert len(graph) == 3
        assert graph.all_names() == frozenset({"app", git_key, registry_key})
        assert graph.direct_deps("app") == (git_key, registry_key)
        assert graph.dependents(git_key) == frozenset({"app"})
        assert graph.collisions[0].keys == (git_key, registry_key)
        kept = graph.records_for(closure(graph, {"app"}))
        assert [r.source for r in kept] == ["", git, registry]

    def test_versioned_identical_blocks_both_kept(self, make_lockfile):
        text = make_lockfile([("dup", "1.0.0", []), ("dup", "1.0.0", [])])
        document = parse_lockfile(text)
        graph = DependencyGraph.build(document.records, CollisionPolicy.VERSIONED)
        assert len(graph) == 2
        keys = graph.collisions[0].keys
        assert len(set(keys)) == 2
        assert keys[1].endswith(" #1")
        assert graph.records_for(keys) == list(document.records)

    def test_last_wins(self, make_lockfile):
        records = parse_lockfile(_duplicated_lockfile(make_lockfile)).records
        graph = DependencyGraph.build(records, CollisionPolicy.LAST_WINS)
        assert graph.get_record("syn").version == "2.0.79"
        # Versioned references fall back to the bare name
        assert graph.direct_deps("app") == ("old-derive", "syn")
        assert graph.dependents("syn") == frozenset({"app", "old-derive"})

    def test_first_wins(self, make_lockfile):
        records = parse_lockfile(_duplicated_lockfile(make_lockfile)).records
        graph = DependencyGraph.build(records, CollisionPolicy.FIRST_WINS)
        assert graph.get_record("syn").version == "1.0.109"

    def test_error_policy(self, make_lockfile):
        records = parse_lockfile(_duplicated_lockfile(make_lockfile)).records
        with pytest.raises(NameCollisionError) as exc_info:
            DependencyGraph.build(records, CollisionPolicy.ERROR)
        assert exc_info.value.names == ["syn"]

    def test_error_policy_without_collisions(self, sample_lockfile_text):
        records = parse_lockfile(sample_lockfile_text).records
        graph = DependencyGraph.build(records, CollisionPolicy.ERROR)
        assert len(graph) == 21


class TestSelection:
    """Tests for records_for and key_for."""

    def test_records_for_uses_file_order(self, sample_lockfile_text):
        graph = DependencyGraph.build(parse_lockfile(sample_lockfile_text).records)
        records = graph.records_for(["tokio", "app", "actix-web", "not-there"])
        assert [r.name for r in records] == ["actix-web", "app", "tokio"]

    def test_shadowed_record_not_selected(self, make_lockfile):
        document = parse_lockfile(_duplicated_lockfile(make_lockfile))
        graph = DependencyGraph.build(document.records, CollisionPolicy.LAST_WINS)
        records = graph.records_for(["syn"])
        assert [r.version for r in records] == ["2.0.79"]
        shadowed = document.records[2]
        assert graph.key_for(shadowed) is None
        assert graph.key_for(document.records[3]) == "syn"


class TestQueries:
    """Tests for constrained_dependents, most_depended_on and export."""

    def test_constrained_dependents(self, make_lockfile):
        text = make_lockfile(
            [
                ("app", "0.1.0", ["actix-web 4.9.0"]),
                ("plugin", "0.2.0", ["actix-web"]),
                ("actix-web", "4.9.0", []),
            ]
        )
        graph = DependencyGraph.build(parse_lockfile(text).records)
        matches = graph.constrained_dependents("actix-web")
        assert [(key, spec.constraint) for key, spec in matches] == [("app", "4.9.0")]

    def test_constrained_dependents_of_blank_target(self, make_graph):
        graph = make_graph({"a": ["b"], "b": []})
        assert graph.constrained_dependents("") == []
        assert graph.constrained_dependents("   ") == []

    def test_most_depended_on(self, sample_lockfile_text):
        graph = DependencyGraph.build(parse_lockfile(sample_lockfile_text).records)
        top = graph.most_depended_on(limit=2)
        assert top == [
            {"package": "bytes", "dependent_count": 5},
            {"package": "proc-macro2", "dependent_count": 4},
        ]

    def test_export_to_dict(self, make_graph):
        graph = make_graph({"a": ["b", "ghost"], "b": []})
        export = graph.export_to_dict()
        assert export["metadata"]["total_packages"] == 2
        assert export["metadata"]["total_edges"] == 2
        assert export["packages"][0] == {
            "key": "a",
            "name": "a",
            "version": "1.0.0",
            "dependencies": ["b", "ghost"],
            "dependents": [],
        }
        assert export["dangling_references"] == [{"package": "a", "dependency": "ghost"}]
