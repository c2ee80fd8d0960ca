from . import assets, documents, jobs, sections, tasks

__all__ = ["assets", "documents", "jobs", "sections", "tasks"]
