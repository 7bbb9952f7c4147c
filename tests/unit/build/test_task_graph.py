"""Tests for the incremental task graph."""

import os
from pathlib import Path

import pytest

from xbuild.build.task_graph import FingerprintNode, NodeState, PhonyNode, TaskGraph, TaskNode
from xbuild.errors import CyclicDependencyError, MissingRuleError, SourceNotFoundError


def touch(path: Path, mtime: float) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text("")
    os.utime(path, (mtime, mtime))
    return path


class Recorder:
    """Action that writes the node output and records the run."""

    def __init__(self):
        self.runs = []

    def __call__(self, node: TaskNode) -> None:
        self.runs.append(node.name)
        if node.output is not None:
            node.output.write_text(node.name)


class TestTaskNodeStaleness:
    """Test staleness decisions on a single node."""

    def test_missing_output_runs(self, tmp_path):
        """Test that a node whose output is absent is stale."""
        source = touch(tmp_path / "a.c", 1000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [source], recorder))

        report = graph.invoke("a")

        assert recorder.runs == ["a"]
        assert report.executed_count == 1
        assert (tmp_path / "a.o").exists()

    def test_up_to_date_output_not_run(self, tmp_path):
        """Test that a newer output than every prerequisite is clean."""
        source = touch(tmp_path / "a.c", 1000)
        touch(tmp_path / "a.o", 2000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [source], recorder))

        report = graph.invoke("a")

        assert recorder.runs == []
        assert report.up_to_date_count == 1
        assert graph.node_for("a").state is NodeState.CLEAN

    def test_newer_prerequisite_runs(self, tmp_path):
        source = touch(tmp_path / "a.c", 3000)
        touch(tmp_path / "a.o", 2000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [source], recorder))

        graph.invoke("a")

        assert recorder.runs == ["a"]

    def test_equal_mtime_is_up_to_date(self, tmp_path):
        """Test that a prerequisite only counts as newer when strictly newer."""
        source = touch(tmp_path / "a.c", 2000)
        touch(tmp_path / "a.o", 2000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [source], recorder))

        report = graph.invoke("a")

        assert recorder.runs == []
        assert report.up_to_date_count == 1

    def test_missing_plain_prerequisite(self, tmp_path):
        """Test that a non-node prerequisite must exist on disk."""
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [tmp_path / "a.c"], Recorder()))

        with pytest.raises(SourceNotFoundError) as exc_info:
            graph.invoke("a")

        assert "a.c" in str(exc_info.value)
        assert "a" in str(exc_info.value)


class TestTaskGraphInvoke:
    """Test dependency ordering and invocation semantics."""

    def test_prerequisites_run_first_and_propagate(self, tmp_path):
        """Test that rebuilding a prerequisite forces its dependents to rebuild."""
        source = touch(tmp_path / "a.c", 1000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("obj", tmp_path / "a.o", [source], recorder))
        graph.add(TaskNode("elf", tmp_path / "a.elf", [tmp_path / "a.o"], recorder))

        graph.invoke("elf")

        assert recorder.runs == ["obj", "elf"]

    def test_each_node_runs_at_most_once(self, tmp_path):
        """Test a diamond: the shared prerequisite runs once."""
        source = touch(tmp_path / "s.c", 1000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("base", tmp_path / "base.o", [source], recorder))
        graph.add(TaskNode("left", tmp_path / "left.o", [tmp_path / "base.o"], recorder))
        graph.add(TaskNode("right", tmp_path / "right.o", [tmp_path / "base.o"], recorder))
        graph.add(TaskNode("top", tmp_path / "top.elf", [tmp_path / "left.o", tmp_path / "right.o"], recorder))

        graph.invoke("top", "base")

        assert recorder.runs.count("base") == 1
        assert recorder.runs[0] == "base"
        assert recorder.runs[-1] == "top"

    def test_second_invocation_is_noop(self, tmp_path):
        source = touch(tmp_path / "a.c", 1000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [source], recorder))
        graph.invoke("a")
        os.utime(tmp_path / "a.o", (2000, 2000))

        graph.reset()
        report = graph.invoke("a")

        assert recorder.runs == ["a"]
        assert report.executed_count == 0

    def test_lookup_by_output_path(self, tmp_path):
        source = touch(tmp_path / "a.c", 1000)
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", Path("a.o"), [Path("a.c")], Recorder()))

        assert graph.node_for(tmp_path / "a.o").name == "a"
        assert graph.node_for("a.o").prerequisites == (source,)

    def test_unknown_target(self, tmp_path):
        with pytest.raises(MissingRuleError, match="ghost"):
            TaskGraph(tmp_path).invoke("ghost")

    def test_default_target(self, tmp_path):
        touch(tmp_path / "a.c", 1000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [tmp_path / "a.c"], recorder))
        graph.default_target = "a"

        graph.invoke()

        assert recorder.runs == ["a"]

    def test_no_default_target(self, tmp_path):
        with pytest.raises(MissingRuleError, match="default"):
            TaskGraph(tmp_path).invoke()

    def test_required_nodes_run_before_targets(self, tmp_path):
        touch(tmp_path / "a.c", 1000)
        recorder = Recorder()
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("rt", tmp_path / "librt.a", (), recorder))
        graph.add(TaskNode("a", tmp_path / "a.o", [tmp_path / "a.c"], recorder))
        graph.require("rt")
        graph.require("rt")

        graph.invoke("a")

        assert recorder.runs == ["rt", "a"]

    def test_cycle_detected(self, tmp_path):
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [tmp_path / "b.o"], Recorder()))
        graph.add(TaskNode("b", tmp_path / "b.o", [tmp_path / "a.o"], Recorder()))

        with pytest.raises(CyclicDependencyError) as exc_info:
            graph.invoke("a")

        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_failed_action_stops_build(self, tmp_path):
        touch(tmp_path / "a.c", 1000)
        recorder = Recorder()

        def fail(node):
            raise RuntimeError("compiler crashed")

        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("obj", tmp_path / "a.o", [tmp_path / "a.c"], fail))
        graph.add(TaskNode("elf", tmp_path / "a.elf", [tmp_path / "a.o"], recorder))

        with pytest.raises(RuntimeError):
            graph.invoke("elf")

        assert recorder.runs == []


class TestSpecialNodes:
    """Test fingerprint and phony nodes."""

    def test_fingerprint_tracks_value(self, tmp_path):
        """Test that changing the recorded value rebuilds dependents."""
        source = touch(tmp_path / "app.rs", 1000)
        marker = tmp_path / ".app"
        recorder = Recorder()

        def build(value):
            graph = TaskGraph(tmp_path)
            graph.add(FingerprintNode("app_name", marker, value))
            graph.add(TaskNode("app", tmp_path / "app.o", [source, marker], recorder))
            return graph.invoke("app")

        build("blink")
        assert marker.read_text() == "blink"
        assert recorder.runs == ["app"]

        os.utime(marker, (2000, 2000))
        os.utime(tmp_path / "app.o", (3000, 3000))
        build("blink")
        assert recorder.runs == ["app"]

        build("uart")
        assert marker.read_text() == "uart"
        assert recorder.runs == ["app", "app"]

    def test_phony_with_action_always_runs(self, tmp_path):
        artifact = touch(tmp_path / "a.elf", 1000)
        runs = []
        graph = TaskGraph(tmp_path)
        graph.add(PhonyNode("size", [artifact], lambda node: runs.append(node.name)))

        graph.invoke("size")
        graph.reset()
        graph.invoke("size")

        assert runs == ["size", "size"]

    def test_alias_reports_executed_only_when_deps_ran(self, tmp_path):
        touch(tmp_path / "a.c", 1000)
        touch(tmp_path / "a.o", 2000)
        graph = TaskGraph(tmp_path)
        graph.add(TaskNode("a", tmp_path / "a.o", [tmp_path / "a.c"], Recorder()))
        graph.add(PhonyNode("all", [tmp_path / "a.o"]))

        report = graph.invoke("all")

        assert report.executed_count == 0
        assert report.up_to_date_count == 2
