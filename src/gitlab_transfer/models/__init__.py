"""Data models for GitLab entities."""

from .project import ExportStatus, Project, ProjectExport, ProjectImport, ProjectRename

__all__ = [
    'ExportStatus',
    'Project',
    'ProjectExport',
    'ProjectImport',
    'ProjectRename',
]
