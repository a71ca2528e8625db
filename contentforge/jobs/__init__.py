"""Generation job records and storage."""

from contentforge.jobs.models import GenerationJob, GenerationMode, JobProgress, JobStatus
from contentforge.jobs.store import get_job_store, new_job_id

__all__ = ["GenerationJob", "GenerationMode", "JobProgress", "JobStatus", "get_job_store", "new_job_id"]
