from archiver.schemas.job import JobDetail, JobSummary, LinkCreate

__all__ = ["JobSummary", "JobDetail", "LinkCreate"]
