"""
Unit Tests for the Job Queue and Worker Task
"""

import importlib

import pytest
from unittest.mock import AsyncMock, Mock, patch

from rq.exceptions import NoSuchJobError
from rq.job import JobStatus

from shortsfusion.services.admission import AdmissionService
from shortsfusion.services.storage import VideoDB
from shortsfusion.workers import sweep, tasks
from shortsfusion.workers.queue import JobQueue, backoff_intervals, job_id_for
from shortsfusion.workers.tasks import run_generation_job


@pytest.fixture
def rq_queue():
    queue = Mock()
    queue.name = "video"
    queue.connection = Mock()
    queue.enqueue = Mock(side_effect=lambda func, video_id, **kwargs: Mock(id=kwargs["job_id"]))
    return queue


@pytest.fixture
def job_queue(rq_queue):
    return JobQueue(queue=rq_queue, max_attempts=3, backoff_initial_s=8)


def _job_with_status(status):
    job = Mock()
    job.get_status = Mock(return_value=status)
    return job


class TestBackoff:

    def test_intervals_double(self):
        assert backoff_intervals(3, 8) == [8, 16]
        assert backoff_intervals(4, 5) == [5, 10, 20]

    def test_single_attempt_has_no_retries(self):
        assert backoff_intervals(1, 8) == []

    def test_job_ids(self):
        assert job_id_for("v1") == "video:v1:generate"
        assert job_id_for("v1", "render") == "video:v1:render"


class TestJobQueue:
    """Test suite for JobQueue"""

    def test_enqueue_new_job(self, job_queue, rq_queue):
        with patch("shortsfusion.workers.queue.Job.fetch", side_effect=NoSuchJobError):
            job = job_queue.enqueue("v1")

        assert job.id == "video:v1:generate"
        args, kwargs = rq_queue.enqueue.call_args
        assert args == (run_generation_job, "v1")
        assert kwargs["job_id"] == "video:v1:generate"
        assert kwargs["retry"].max == 2
        assert list(kwargs["retry"].intervals) == [8, 16]

    def test_render_phase_has_its_own_job_id(self, job_queue, rq_queue):
        with patch("shortsfusion.workers.queue.Job.fetch", side_effect=NoSuchJobError):
            job_queue.enqueue("v1", phase="render")

        assert rq_queue.enqueue.call_args.kwargs["job_id"] == "video:v1:render"

    def test_pending_job_is_not_enqueued_twice(self, job_queue, rq_queue):
        existing = _job_with_status(JobStatus.QUEUED)

        with patch("shortsfusion.workers.queue.Job.fetch", return_value=existing):
            job = job_queue.enqueue("v1")

        assert job is existing
        rq_queue.enqueue.assert_not_called()

    def test_finished_job_can_be_enqueued_again(self, job_queue, rq_queue):
        with patch(
            "shortsfusion.workers.queue.Job.fetch",
            return_value=_job_with_status(JobStatus.FAILED),
        ):
            job_queue.enqueue("v1")

        rq_queue.enqueue.assert_called_once()

    def test_unknown_phase(self, job_queue):
        with pytest.raises(ValueError):
            job_queue.enqueue("v1", phase="publish")

    def test_has_pending_job(self, job_queue):
        def fetch(job_id, connection=None):
            if job_id == "video:v1:render":
                return _job_with_status(JobStatus.SCHEDULED)
            raise NoSuchJobError(job_id)

        with patch("shortsfusion.workers.queue.Job.fetch", side_effect=fetch):
            assert job_queue.has_pending_job("v1")
            assert not job_queue.has_pending_job("v2")

    def test_dead_letters(self, job_queue):
        with patch("shortsfusion.workers.queue.FailedJobRegistry") as registry_cls:
            registry_cls.return_value.get_job_ids.return_value = ["video:v9:generate"]

            assert job_queue.dead_letters() == ["video:v9:generate"]

    def test_requeue_dead_letter(self, job_queue):
        with patch("shortsfusion.workers.queue.FailedJobRegistry") as registry_cls:
            registry_cls.return_value.requeue.return_value = Mock(id="video:v9:generate")

            job = job_queue.requeue_dead_letter("video:v9:generate")

        assert job.id == "video:v9:generate"
        registry_cls.return_value.requeue.assert_called_once_with("video:v9:generate")


class TestRunGenerationJob:
    """RQ entry point"""

    def test_final_attempt_follows_retries_left(self):
        run = AsyncMock(return_value="processing")
        job = Mock(id="video:v1:generate", retries_left=2)

        with patch.object(tasks, "get_current_job", return_value=job), \
                patch.object(tasks, "_run_pipeline", run):
            run_generation_job("v1")

        run.assert_awaited_once_with("v1", False)

    def test_runs_pipeline_end_to_end(
        self, test_db_session, test_session_factory, make_user, mock_queue, fake_providers
    ):
        make_user(tokens=10)
        video_id = AdmissionService(mock_queue).submit(
            test_db_session, "user-1", "Octopus facts", "minimal", 30
        )["video_id"]
        for adapter in (fake_providers.image, fake_providers.voice, fake_providers.render):
            adapter.close = AsyncMock()

        with patch.object(tasks, "get_current_job", return_value=None), \
                patch.object(tasks, "build_providers", return_value=fake_providers), \
                patch.object(tasks, "SessionLocal", test_session_factory):
            status = run_generation_job(video_id)

        assert status == "completed"
        test_db_session.expire_all()
        assert VideoDB.get_video(test_db_session, video_id).status == "completed"
        fake_providers.render.close.assert_awaited_once()


class TestSweepCommand:
    """Operator entry point"""

    def test_lists_dead_letters(self, capsys):
        queue = Mock()
        queue.dead_letters.return_value = ["video:v1:generate", "video:v2:render"]

        sweep.main(["--dead-letters"], queue=queue)

        assert capsys.readouterr().out.split() == ["video:v1:generate", "video:v2:render"]
        queue.requeue_dead_letter.assert_not_called()

    def test_requeues_one_dead_letter(self):
        queue = Mock()

        sweep.main(["--requeue", "video:v1:render"], queue=queue)

        queue.requeue_dead_letter.assert_called_once_with("video:v1:render")

    def test_single_sweep(self):
        queue = Mock()

        with patch.object(sweep, "init_db"), \
                patch.object(sweep, "run_once", return_value={}) as run_once:
            sweep.main(["--once"], queue=queue)

        run_once.assert_called_once_with(queue)

    def test_env_file_loaded_at_import(self):
        with patch("dotenv.load_dotenv") as load_dotenv:
            importlib.reload(sweep)

        load_dotenv.assert_called_once_with()
