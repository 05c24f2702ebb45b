import io
import threading
from pathlib import Path

import pytest

from clipforge.video_render import ffmpeg_runner
from clipforge.video_render.ffmpeg_runner import FFmpegError, RenderCancelled, parse_progress_line, run_ffmpeg
from clipforge.video_render.models import PlanStep, RenderPlan


class FakeProcess:
    def __init__(self, lines, returncode):
        self.stdout = io.StringIO("".join(lines))
        self.returncode = returncode
        self.terminated = False

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.terminated = True

    def wait(self, timeout=None):
        return self.returncode


def fake_popen(lines=(), returncode=0, stderr_text=b""):
    calls = []

    def _popen(args, stdout=None, stderr=None, text=None):
        calls.append(args)
        Path(args[-1]).write_bytes(b"rendered")
        if stderr_text:
            stderr.write(stderr_text)
        proc = FakeProcess(lines, returncode)
        calls.append(proc)
        return proc

    _popen.calls = calls
    return _popen


def _plan(tmp_path, steps=True):
    out = tmp_path / "renders" / "out.mp4"
    return RenderPlan(
        output_path=str(out),
        width=1920,
        height=1080,
        fps=30,
        duration=10.0,
        steps=[PlanStep(description="render timeline", ffmpeg_args=["ffmpeg", "-i", "in.mp4", str(out)])]
        if steps
        else [],
    )


def test_parse_progress_line():
    assert parse_progress_line("out_time_us=2500000", 10.0) == 0.25
    assert parse_progress_line("out_time_ms=20000000\n", 10.0) == 1.0
    assert parse_progress_line("frame=12", 10.0) is None
    assert parse_progress_line("out_time_us=N/A", 10.0) is None
    assert parse_progress_line("out_time_us=100", 0.0) is None


def test_success_moves_partial_into_place(tmp_path, monkeypatch):
    popen = fake_popen(["frame=1\n", "out_time_us=5000000\n", "progress=end\n"])
    monkeypatch.setattr(ffmpeg_runner.subprocess, "Popen", popen)
    seen = []
    plan = _plan(tmp_path)

    result = run_ffmpeg(plan, on_progress=seen.append)

    assert result == plan.output_path
    assert Path(plan.output_path).read_bytes() == b"rendered"
    assert popen.calls[0][-1].endswith("out.partial.mp4")
    assert not Path(popen.calls[0][-1]).exists()
    assert seen == [0.5, 1.0]


def test_failure_removes_partial_and_reports_stderr(tmp_path, monkeypatch):
    popen = fake_popen(returncode=1, stderr_text=b"line one\nInvalid filter\n")
    monkeypatch.setattr(ffmpeg_runner.subprocess, "Popen", popen)
    plan = _plan(tmp_path)

    with pytest.raises(FFmpegError) as excinfo:
        run_ffmpeg(plan)

    assert "Invalid filter" in excinfo.value.stderr_tail
    assert "code 1" in str(excinfo.value)
    assert not Path(popen.calls[0][-1]).exists()
    assert not Path(plan.output_path).exists()


def test_cancel_stops_engine_and_cleans_up(tmp_path, monkeypatch):
    popen = fake_popen(["out_time_us=1000000\n", "out_time_us=2000000\n"])
    monkeypatch.setattr(ffmpeg_runner.subprocess, "Popen", popen)
    cancel = threading.Event()
    cancel.set()
    plan = _plan(tmp_path)

    with pytest.raises(RenderCancelled):
        run_ffmpeg(plan, cancel_event=cancel)

    assert popen.calls[1].terminated
    assert not Path(popen.calls[0][-1]).exists()
    assert not Path(plan.output_path).exists()


def test_plan_without_steps(tmp_path):
    with pytest.raises(FFmpegError):
        run_ffmpeg(_plan(tmp_path, steps=False))


def test_missing_binary(tmp_path, monkeypatch):
    def _popen(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(ffmpeg_runner.subprocess, "Popen", _popen)
    with pytest.raises(FFmpegError) as excinfo:
        run_ffmpeg(_plan(tmp_path), stage="export", hint="install ffmpeg")
    assert "failed to start" in str(excinfo.value)
    assert excinfo.value.stage == "export"
