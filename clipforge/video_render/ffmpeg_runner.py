from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from clipforge.config import runtime_config
from clipforge.video_render.models import RenderPlan

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class FFmpegError(RuntimeError):
    def __init__(self, message: str, *, stage: str = "ffmpeg", stderr_tail: str | None = None, hint: str | None = None):
        super().__init__(message)
        self.stage = stage
        self.stderr_tail = stderr_tail
        self.hint = hint

    def __str__(self) -> str:
        base = f"[{self.stage}] {super().__str__()}"
        if self.hint:
            base += f" (hint: {self.hint})"
        return base


class RenderCancelled(FFmpegError):
    def __init__(self, message: str = "render cancelled") -> None:
        super().__init__(message, stage="cancelled")


def _partial_path(out_path: Path) -> Path:
    return out_path.with_name(f"{out_path.stem}.partial{out_path.suffix}")


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def parse_progress_line(line: str, total_seconds: float) -> Optional[float]:
    """Fraction complete from one ``-progress`` line, or None for other keys."""
    key, _, value = line.strip().partition("=")
    if key not in ("out_time_us", "out_time_ms") or total_seconds <= 0:
        return None
    try:
        # ffmpeg reports both keys in microseconds.
        seconds = int(value) / 1_000_000
    except ValueError:
        return None
    return max(0.0, min(1.0, seconds / total_seconds))


def _stderr_tail(handle) -> str:
    handle.seek(0)
    err_log = handle.read().decode("utf-8", errors="replace")
    return "\n".join(err_log.splitlines()[-10:])


def run_ffmpeg(
    plan: RenderPlan,
    timeout: Optional[int] = None,
    *,
    stage: str = "ffmpeg",
    hint: str | None = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Execute the first step of a render plan via ffmpeg.

    Output is written next to the target under a ``.partial`` name and moved
    into place only on success; failure, timeout and cancellation all delete
    it. Returns the output path. Raises FFmpegError (RenderCancelled on cancel).
    """
    if not plan.steps:
        raise FFmpegError("render plan has no steps", stage=stage, hint=hint)
    step = plan.steps[0]
    if not step.ffmpeg_args:
        raise FFmpegError("ffmpeg args missing", stage=stage, hint=hint)
    timeout = timeout or runtime_config.get_render_timeout()
    out_path = Path(plan.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    partial = _partial_path(out_path)
    args = list(step.ffmpeg_args)
    if args[-1] == plan.output_path:
        args[-1] = str(partial)

    cancel_event = cancel_event or threading.Event()
    deadline = time.monotonic() + timeout
    logger.info("starting ffmpeg for %s (%d inputs)", plan.output_path, len(plan.inputs))
    with tempfile.TemporaryFile() as err:
        try:
            proc = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=err, text=True)
        except OSError as exc:
            raise FFmpegError(f"ffmpeg failed to start: {exc}", stage=stage, hint=hint) from exc
        try:
            for line in proc.stdout:
                if cancel_event.is_set() or time.monotonic() > deadline:
                    break
                fraction = parse_progress_line(line, plan.duration)
                if fraction is not None and on_progress:
                    on_progress(fraction)
            if cancel_event.is_set() or time.monotonic() > deadline:
                proc.terminate()
            returncode = proc.wait(timeout=max(1.0, deadline - time.monotonic()))
        except subprocess.TimeoutExpired as exc:
            proc.kill()
            proc.wait()
            _remove(partial)
            raise FFmpegError(f"ffmpeg timed out: {exc}", stage=stage, hint=hint) from exc
        except BaseException:
            proc.kill()
            proc.wait()
            _remove(partial)
            raise
        finally:
            if proc.stdout:
                proc.stdout.close()

        if cancel_event.is_set():
            _remove(partial)
            logger.info("ffmpeg cancelled for %s", plan.output_path)
            raise RenderCancelled()
        if time.monotonic() > deadline:
            _remove(partial)
            raise FFmpegError(f"ffmpeg timed out after {timeout}s", stage=stage, hint=hint)
        if returncode != 0:
            _remove(partial)
            tail = _stderr_tail(err)
            logger.error("ffmpeg failed (code %s) for %s", returncode, plan.output_path)
            raise FFmpegError(
                f"ffmpeg failed (code {returncode}):\n{tail}", stage=stage, stderr_tail=tail, hint=hint
            )

    os.replace(partial, out_path)
    if on_progress:
        on_progress(1.0)
    return str(out_path)
