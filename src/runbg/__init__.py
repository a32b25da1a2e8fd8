"""runbg: transient systemd job runner."""

from runbg.jobs import clean_jobs, kill_all_jobs, kill_job, list_jobs
from runbg.launcher import start_job
from runbg.naming import IdentifierAllocator, JobIdentifier
from runbg.supervisor import SystemdSupervisor

__all__ = [
    "IdentifierAllocator",
    "JobIdentifier",
    "SystemdSupervisor",
    "clean_jobs",
    "kill_all_jobs",
    "kill_job",
    "list_jobs",
    "start_job",
]
