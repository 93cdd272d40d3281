from archiver.models.job import LINK_CAP, Job, JobStatus

__all__ = ["LINK_CAP", "Job", "JobStatus"]
