#!/usr/bin/env python3
"""
Integration tests for trace replay
"""

import json

import pytest

from camera_proxy.cli import main, read_trace, replay
from camera_proxy.core.engine import CameraMatrixEngine
from camera_proxy.core.matrix_bank import MatrixSlot
from camera_proxy.core.profile_store import ProfileStore
from tests.fixtures.matrix_fixtures import flatten, projection_matrix, view_matrix

SHADER = 0x1000


def trace_lines(frames=5, bytecode_hash="feedface"):
    lines = [json.dumps({"event": "bind", "shader": SHADER, "hash": bytecode_hash})]
    for _ in range(frames):
        lines.append(json.dumps({"event": "write", "shader": SHADER, "start": 0,
                                 "floats": flatten(projection_matrix())}))
        lines.append(json.dumps({"event": "write", "shader": SHADER, "start": 4,
                                 "floats": flatten(view_matrix())}))
        lines.append(json.dumps({"event": "draw", "shader": SHADER}))
        lines.append(json.dumps({"event": "present"}))
    return lines


@pytest.mark.integration
class TestTraceReplay:
    """Test trace parsing and dispatch"""

    def test_read_trace_skips_bad_lines(self):
        events = list(read_trace([
            "",
            "# comment",
            "{broken",
            json.dumps({"event": "teleport"}),
            json.dumps({"event": "present"}),
        ]))
        assert events == [{"event": "present"}]

    def test_replay(self, fast_config):
        engine = CameraMatrixEngine(config=fast_config, profile_store=ProfileStore())
        applied = replay(engine, read_trace(trace_lines()))

        assert applied == 21
        assert engine.frame == 5
        assert engine.get_matrix(MatrixSlot.VIEW).valid
        assert engine.get_matrix(MatrixSlot.PROJECTION).valid
        assert engine.registers.get_context(SHADER).bytecode_hash == "feedface"

    def test_malformed_event_skipped(self, fast_config):
        engine = CameraMatrixEngine(config=fast_config, profile_store=ProfileStore())
        applied = replay(engine, [{"event": "write", "shader": "zero", "start": 0}])
        assert applied == 0


@pytest.mark.integration
class TestMain:
    """Test the command line entry point"""

    def test_main_reports_bank(self, clean_temp_dir, capsys):
        trace = clean_temp_dir / "trace.jsonl"
        trace.write_text("\n".join(trace_lines()) + "\n")
        config = clean_temp_dir / "config.json"
        config.write_text(json.dumps({"min_frames_seen": 4, "min_consecutive_frames": 4}))
        profiles = clean_temp_dir / "profiles.json"

        code = main([str(trace), "--config", str(config), "--profiles", str(profiles), "--status"])
        assert code == 0

        out = capsys.readouterr().out
        report = json.loads(out[out.index('{\n  "matrices"'):])
        assert report["matrices"]["view"]["valid"]
        assert report["matrices"]["view"]["provenance"]["base_register"] == 4
        assert report["matrices"]["projection"]["provenance"]["base_register"] == 0
        assert not report["matrices"]["mvp"]["valid"]
        assert report["status"]["frame"] == 5

        stored = json.loads(profiles.read_text())
        assert stored["profiles"]["feedface"]["view_base"] == 4

    def test_missing_trace(self, clean_temp_dir):
        assert main([str(clean_temp_dir / "absent.jsonl")]) == 1
