from types import SimpleNamespace

from ogugu.config import JobConfig, SchedulerConfig
from ogugu.scheduler import REFRESH_JOB_ID, create_scheduler, get_all_jobs, schedule_refresh_job


def test_refresh_job_is_scheduled_without_overlap():
    scheduler = create_scheduler(SchedulerConfig())
    app_context = SimpleNamespace()

    job_id = schedule_refresh_job(scheduler, app_context, JobConfig(interval_minutes=15))

    job = scheduler.get_job(job_id)
    assert job_id == REFRESH_JOB_ID
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.args == (app_context,)


def test_get_all_jobs_describes_refresh_job():
    scheduler = create_scheduler(SchedulerConfig())
    schedule_refresh_job(scheduler, SimpleNamespace(), JobConfig(run_on_start=False))

    jobs = get_all_jobs(scheduler)

    assert len(jobs) == 1
    assert jobs[0]["id"] == REFRESH_JOB_ID
    assert jobs[0]["function"] == "run_refresh_pass"
    assert jobs[0]["next_run_time"] is not None
