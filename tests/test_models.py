from pathlib import Path

import pytest

from vconvq.errors import ErrorKind, InvalidSettings, InvalidTransition
from vconvq.models.conversion import ConversionSettings
from vconvq.models.job import Job, JobStatus
from vconvq.models.queue import BatchRun, JobSnapshot, QueueSnapshot
from vconvq.utils.access import AccessGuard


class TestConversionSettings:
    def test_defaults(self):
        s = ConversionSettings()
        assert s.to_dict() == {"output_format": "mp4", "video_codec": "h264", "audio_codec": "aac", "quality_preset": "low"}

    def test_rejects_unknown_values(self):
        with pytest.raises(InvalidSettings) as exc:
            ConversionSettings(video_codec="vp9")
        assert exc.value.field == "video_codec"
        assert exc.value.value == "vp9"

    def test_from_dict_normalises_and_ignores_extras(self):
        s = ConversionSettings.from_dict({"output_format": " MOV ", "video_codec": "HEVC", "output_dir": "/x", "audio_codec": None})
        assert s == ConversionSettings(output_format="mov", video_codec="hevc")

    def test_describe(self):
        assert ConversionSettings().describe() == "MP4 • H.264 (libx264) • AAC • Low"


class TestJob:
    def test_new_job(self):
        job = Job("/v/a.mov")
        assert job.status is JobStatus.PENDING
        assert job.input_path == Path("/v/a.mov")
        assert job.name == "a.mov"
        assert len(job.id) == 32
        assert Job("/v/a.mov").id != job.id

    def test_happy_path(self):
        job = Job("a.mov")
        job.set_status(JobStatus.PREPARING)
        job.set_status(JobStatus.CONVERTING)
        job.set_progress(0.4)
        assert job.progress == 0.4
        job.set_status(JobStatus.COMPLETED, "Converted: 1 → 2")
        assert job.progress == 1.0
        assert job.success_message == "Converted: 1 → 2"
        assert job.error_message is None

    def test_failure_sets_kind(self):
        job = Job("a.mov")
        job.set_status(JobStatus.PREPARING)
        job.set_status(JobStatus.FAILED, "nope", ErrorKind.ACCESS_DENIED)
        assert job.error_message == "nope"
        assert job.error_kind is ErrorKind.ACCESS_DENIED
        assert job.success_message is None

    def test_cancel_defaults(self):
        job = Job("a.mov")
        job.set_status(JobStatus.CANCELLED)
        assert job.error_message == "Cancelled"
        assert job.error_kind is ErrorKind.USER_CANCELLED

    @pytest.mark.parametrize("path", [
        (JobStatus.CONVERTING,),
        (JobStatus.COMPLETED,),
        (JobStatus.PREPARING, JobStatus.CONVERTING, JobStatus.SKIPPED),
        (JobStatus.CANCELLED, JobStatus.COMPLETED),
    ])
    def test_illegal_transitions(self, path):
        job = Job("a.mov")
        *ok, bad = path
        for s in ok:
            job.set_status(s)
        with pytest.raises(InvalidTransition):
            job.set_status(bad)

    def test_progress_ignored_outside_converting(self):
        job = Job("a.mov")
        job.set_progress(0.5)
        assert job.progress == 0.0
        job.set_status(JobStatus.PREPARING)
        job.set_status(JobStatus.CONVERTING)
        job.set_progress(7)
        assert job.progress == 1.0
        job.set_progress(-1)
        assert job.progress == 0.0

    def test_retry_resets(self):
        job = Job("a.mov", output_path=Path("/o/a.mp4"))
        job.set_status(JobStatus.PREPARING)
        job.set_status(JobStatus.FAILED, "x")
        job.set_status(JobStatus.PENDING)
        assert job.error_message is None and job.error_kind is None
        assert job.output_path is None
        assert job.progress == 0.0

    def test_release_access(self):
        released = []
        job = Job("a.mov", access_guard=AccessGuard(Path("a.mov"), on_release=released.append))
        job.release_access()
        job.release_access()
        assert released == [Path("a.mov")]
        assert job.access_guard is None


class TestBatchRun:
    def test_running_summary(self):
        b = BatchRun(Path("/o"), ConversionSettings(), total=3)
        b.count(JobStatus.COMPLETED)
        assert b.summary() == "Queue: 1/3 done • 2 left"

    def test_finished_summary(self):
        b = BatchRun(Path("/o"), ConversionSettings(), total=4)
        for s in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.COMPLETED):
            b.count(s)
        b.is_running = False
        assert b.summary() == "Finished: 2/4 converted • 1 failed, 1 cancelled"

    def test_finished_clean(self):
        b = BatchRun(Path("/o"), ConversionSettings(), total=1, is_running=False, completed=1)
        assert b.summary() == "Finished: 1/1 converted"


class TestSnapshots:
    def test_snapshot_is_detached_from_job(self):
        job = Job("a.mov")
        snap = JobSnapshot.of(job)
        job.set_status(JobStatus.PREPARING)
        assert snap.status is JobStatus.PENDING
        assert snap.name == "a.mov"
        assert snap.message == ""

    def test_queue_lookup(self):
        a, b = Job("a.mov"), Job("b.mov")
        b.set_status(JobStatus.PREPARING)
        q = QueueSnapshot(jobs=(JobSnapshot.of(a), JobSnapshot.of(b)), is_running=True, active_job_id=b.id)
        assert q.get(a.id).name == "a.mov"
        assert q.get("missing") is None
        assert [j.id for j in q.with_status(JobStatus.PENDING)] == [a.id]
        assert q.active_job.id == b.id
        assert QueueSnapshot().active_job is None
