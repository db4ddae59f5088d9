"""FFmpegRunner against a scripted stand-in for ffmpeg."""

from __future__ import annotations

import sys
import textwrap

import pytest

from vconvq.errors import ErrorKind
from vconvq.workers.duration_probe import probe_duration
from vconvq.workers.ffmpeg_runner import CANCELLED_MESSAGE, FFmpegRunner

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="select() on pipes is POSIX only")

TIMEOUT = 10_000


def script(body: str) -> list[str]:
    return ["-c", textwrap.dedent(body)]


class Recorder:
    def __init__(self, runner: FFmpegRunner):
        self.events: list[tuple] = []
        runner.started.connect(lambda j: self.events.append(("started", j)))
        runner.progress.connect(lambda j, v: self.events.append(("progress", j, v)))
        runner.finished.connect(lambda j: self.events.append(("finished", j)))
        runner.failed.connect(lambda j, m, k: self.events.append(("failed", j, m, k)))

    def of(self, name):
        return [e for e in self.events if e[0] == name]

    @property
    def progress(self):
        return [e[2] for e in self.of("progress")]

    @property
    def terminals(self):
        return [e for e in self.events if e[0] in ("finished", "failed")]


@pytest.fixture
def runner(qapp):
    r = FFmpegRunner(duration_probe=lambda p, cancel=None: 10.0, terminate_timeout=5.0)
    yield r
    r.cancel()
    r.wait(10)


@pytest.fixture
def media(tmp_path):
    p = tmp_path / "clip.mov"
    p.write_bytes(b"\0")
    return p


def test_progress_then_success(qtbot, runner, media):
    rec = Recorder(runner)
    args = script("""
        import sys, time
        out = sys.stdout
        out.write("frame=1\\nout_time_us=25"); out.flush()
        time.sleep(0.05)
        out.write("00000\\nprogress=continue\\n"); out.flush()
        out.write("out_time_us=5000000\\n"); out.flush()
        sys.stderr.write("encoder warming up\\n")
        out.write("progress=end\\n")
    """)
    with qtbot.waitSignal(runner.finished, timeout=TIMEOUT) as blocker:
        runner.run(sys.executable, args, "job1", media)

    assert blocker.args == ["job1"]
    assert rec.of("started") == [("started", "job1")]
    assert rec.progress == [0.25, 0.5, 1.0]
    assert len(rec.terminals) == 1
    assert not runner.is_running()


def test_lines_are_forwarded(qtbot, runner, media):
    lines = []
    runner.line_out.connect(lambda j, ln: lines.append((j, ln)))
    args = script("""
        import sys
        sys.stderr.write("Input #0, mov\\n\\nStream #0:0: Video\\n")
    """)
    with qtbot.waitSignal(runner.finished, timeout=TIMEOUT):
        runner.run(sys.executable, args, "job1", media)
    assert lines == [("job1", "Input #0, mov"), ("job1", "Stream #0:0: Video")]


def test_encoder_error_is_reported_verbatim(qtbot, runner, media):
    rec = Recorder(runner)
    args = script("""
        import sys
        sys.stderr.write("ffmpeg version 6.1\\nUnknown encoder 'libx266'\\n")
        sys.exit(1)
    """)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.run(sys.executable, args, "job1", media)

    assert blocker.args == ["job1", "Unknown encoder 'libx266'", ErrorKind.RUNTIME_FAILURE.value]
    assert 1.0 not in rec.progress
    assert len(rec.terminals) == 1


def test_exit_code_without_diagnostics(qtbot, runner, media):
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.run(sys.executable, script("import sys; sys.exit(3)"), "job1", media)
    assert blocker.args[1] == "FFmpeg failed with exit code 3. No specific error message found on stderr."


def test_error_line_with_zero_exit_is_failure(qtbot, runner, media):
    args = script("""
        import sys
        sys.stderr.write("Could not write header for output file #0\\n")
    """)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.run(sys.executable, args, "job1", media)
    assert blocker.args[1] == "Could not write header for output file #0"
    assert blocker.args[2] == ErrorKind.RUNTIME_FAILURE.value


def test_killed_by_signal(qtbot, runner, media):
    args = script("""
        import os, signal
        os.kill(os.getpid(), signal.SIGTERM)
    """)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.run(sys.executable, args, "job1", media)
    assert blocker.args[1] == "FFmpeg was terminated by signal 15."


def test_cancel_terminates_process(qtbot, runner, media):
    rec = Recorder(runner)
    args = script("""
        import sys, time
        sys.stderr.write("ready\\n"); sys.stderr.flush()
        time.sleep(30)
    """)
    with qtbot.waitSignal(runner.line_out, timeout=TIMEOUT):
        runner.run(sys.executable, args, "job1", media)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.cancel()

    assert blocker.args == ["job1", CANCELLED_MESSAGE, ErrorKind.USER_CANCELLED.value]
    assert len(rec.terminals) == 1
    assert not runner.is_running()


def test_cancel_escalates_to_kill(qtbot, runner, media):
    runner.terminate_timeout = 0.3
    args = script("""
        import signal, sys, time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        sys.stderr.write("ready\\n"); sys.stderr.flush()
        time.sleep(30)
    """)
    with qtbot.waitSignal(runner.line_out, timeout=TIMEOUT):
        runner.run(sys.executable, args, "job1", media)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.cancel()
    assert blocker.args[2] == ErrorKind.USER_CANCELLED.value


def test_unknown_duration_never_launches(qtbot, media, monkeypatch, qapp):
    def no_launch(*a, **kw):
        raise AssertionError("ffmpeg must not be launched")

    monkeypatch.setattr("vconvq.workers.ffmpeg_runner.subprocess.Popen", no_launch)
    runner = FFmpegRunner(duration_probe=lambda p, cancel=None: 0.0)
    rec = Recorder(runner)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.run("/usr/bin/ffmpeg", ["-i", str(media)], "job1", media)

    assert blocker.args[2] == ErrorKind.DURATION_UNKNOWN.value
    assert rec.of("started") == []
    runner.wait(5)


def test_launch_failure(qtbot, runner, media, tmp_path):
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.run(str(tmp_path / "no-such-ffmpeg"), [], "job1", media)
    assert blocker.args[2] == ErrorKind.LAUNCH_FAILED.value
    assert blocker.args[1].startswith("Failed to start FFmpeg")


def test_second_run_while_busy_is_refused(qtbot, runner, media):
    args = script("""
        import sys, time
        sys.stderr.write("ready\\n"); sys.stderr.flush()
        time.sleep(30)
    """)
    with qtbot.waitSignal(runner.line_out, timeout=TIMEOUT):
        runner.run(sys.executable, args, "job1", media)
    assert runner.current_job_id == "job1"
    with pytest.raises(RuntimeError):
        runner.run(sys.executable, args, "job2", media)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT):
        runner.cancel()


def test_cancel_when_idle_is_noop(qtbot, runner):
    rec = Recorder(runner)
    runner.cancel()
    qtbot.wait(50)
    assert rec.events == []
    assert runner.wait(0.1)


def test_cancel_kills_process_that_closed_its_pipes(qtbot, runner, media):
    runner.terminate_timeout = 0.3
    args = script("""
        import os, signal, sys, time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        sys.stderr.write("ready\\n"); sys.stderr.flush()
        os.close(1); os.close(2)
        time.sleep(30)
    """)
    with qtbot.waitSignal(runner.line_out, timeout=TIMEOUT):
        runner.run(sys.executable, args, "job1", media)
    with qtbot.waitSignal(runner.failed, timeout=TIMEOUT) as blocker:
        runner.cancel()
    assert blocker.args == ["job1", CANCELLED_MESSAGE, ErrorKind.USER_CANCELLED.value]
    assert runner.wait(2.0)


def test_cancel_interrupts_duration_probe(qtbot, media, tmp_path, qapp):
    ffprobe = tmp_path / "ffprobe"
    ffprobe.write_text("#!/bin/sh\nexec sleep 30\n")
    ffprobe.chmod(0o755)
    runner = FFmpegRunner(duration_probe=lambda p, cancel=None: probe_duration(p, str(ffprobe), cancel=cancel))
    rec = Recorder(runner)

    runner.run(sys.executable, script("pass"), "job1", media)
    qtbot.wait(100)
    with qtbot.waitSignal(runner.failed, timeout=3_000) as blocker:
        runner.cancel()

    assert blocker.args == ["job1", CANCELLED_MESSAGE, ErrorKind.USER_CANCELLED.value]
    assert rec.of("started") == []
    assert runner.wait(2.0)
