"""Project and project export models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ExportStatus(str, Enum):
    """Values of ``export_status`` reported by the export endpoint."""

    NONE = 'none'
    QUEUED = 'queued'
    STARTED = 'started'
    REGENERATION_IN_PROGRESS = 'regeneration_in_progress'
    FINISHED = 'finished'
    FAILED = 'failed'


class ProjectExport(BaseModel):
    """Export state of a project."""

    id: Optional[int] = Field(default=None, description='Project ID')
    path_with_namespace: Optional[str] = Field(
        default=None, description='Full project path'
    )
    export_status: str = Field(..., description='Export job status')

    @property
    def is_finished(self) -> bool:
        return self.export_status == ExportStatus.FINISHED.value

    @property
    def is_failed(self) -> bool:
        return self.export_status == ExportStatus.FAILED.value


class Project(BaseModel):
    """GitLab project as returned by a project lookup."""

    id: int = Field(..., description='Project ID')
    name: str = Field(..., description='Project name')
    path: str = Field(..., description='Project path')
    path_with_namespace: Optional[str] = Field(
        default=None, description='Full project path'
    )
    web_url: Optional[str] = Field(default=None, description='Web URL')
    archived: Optional[bool] = Field(default=None, description='Project is archived')

    def renamed(self, suffix: str) -> 'ProjectRename':
        """Build the rename request that moves this project out of the way."""
        return ProjectRename(name=f'{self.name}{suffix}', path=f'{self.path}{suffix}')


class ProjectRename(BaseModel):
    """Payload for renaming a project."""

    name: str = Field(..., description='New project name')
    path: str = Field(..., description='New project path')


class ProjectImport(BaseModel):
    """Import job accepted by the destination instance."""

    id: Optional[int] = Field(default=None, description='New project ID')
    path_with_namespace: Optional[str] = Field(
        default=None, description='Full path of the new project'
    )
    import_status: Optional[str] = Field(default=None, description='Import job status')
