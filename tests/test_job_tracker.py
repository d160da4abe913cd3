import threading

from flask import current_app

from recshelf.exceptions import JobError
from recshelf.utils.job_tracker import JobProgress, JobTracker, get_job_runner


def test_unknown_job_polls_as_error():
    status = JobTracker().poll("does-not-exist").to_dict()

    assert status == {'percent': 0, 'message': 'Unknown process', 'isComplete': False, 'isError': True}


def test_progress_updates_are_clamped():
    tracker = JobTracker()
    tracker.register("j1", kind="test")
    progress = JobProgress(tracker, "j1")

    progress(150, "Almost")
    assert tracker.poll("j1").percent == 100
    progress(-5)
    status = tracker.poll("j1")
    assert status.percent == 0
    assert status.message == "Almost"


def test_completed_job_ignores_later_updates():
    tracker = JobTracker()
    tracker.register("j1")
    tracker.complete("j1", "Complete! Updated 2 book(s)")

    assert tracker.update("j1", 40, "late write") is False
    assert tracker.fail("j1", "too late") is False
    assert tracker.poll("j1").to_dict() == {
        'percent': 100,
        'message': 'Complete! Updated 2 book(s)',
        'isComplete': True,
        'isError': False,
    }


def test_failed_job_reports_error():
    tracker = JobTracker()
    tracker.register("j1")
    tracker.update("j1", 60, "Working")
    tracker.fail("j1", "Recommendation not found")

    status = tracker.poll("j1")
    assert status.is_error and not status.is_complete
    assert status.message == "Recommendation not found"
    assert tracker.get_stats()['jobs_failed'] == 1


def test_poll_returns_a_copy():
    tracker = JobTracker()
    tracker.register("j1")
    snapshot = tracker.poll("j1")
    tracker.update("j1", 50, "Halfway")

    assert snapshot.percent == 0


def test_concurrent_updates_keep_one_consistent_status():
    tracker = JobTracker()
    tracker.register("j1")

    def worker(n):
        for i in range(200):
            tracker.update("j1", i % 100, f"worker {n}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    status = tracker.poll("j1")
    assert 0 <= status.percent <= 100
    assert status.message.startswith("worker ")


def test_runner_completes_with_returned_message_inside_app_context(app):
    runner = get_job_runner(app)

    def body(progress, suffix):
        progress(50, "Half")
        return f"Done with {current_app.config['JOB_WORKERS']} workers{suffix}"

    job_id = runner.start('test', body, "!")
    status = runner.wait(job_id, timeout=10)

    assert status.is_complete
    assert status.percent == 100
    assert status.message == "Done with 2 workers!"


def test_runner_uses_default_message_when_body_returns_nothing(app):
    runner = get_job_runner(app)
    job_id = runner.start('test', lambda progress: None)

    assert runner.wait(job_id, timeout=10).message == "Complete!"


def test_runner_reports_job_error_message(app):
    runner = get_job_runner(app)

    def body(progress):
        raise JobError("Could not find series information on Goodreads")

    status = runner.wait(runner.start('test', body), timeout=10)

    assert status.is_error
    assert status.message == "Could not find series information on Goodreads"


def test_runner_reports_unexpected_crash(app):
    runner = get_job_runner(app)

    def body(progress):
        progress(30, "Working")
        raise RuntimeError("boom")

    status = runner.wait(runner.start('test', body), timeout=10)

    assert status.to_dict() == {'percent': 0, 'message': 'Error: boom', 'isComplete': False, 'isError': True}
