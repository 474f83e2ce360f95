"""Export/import pipeline that moves one project between GitLab instances."""

import asyncio
from datetime import datetime
from enum import Enum
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.client import GitLabClient
from ..api.exceptions import GitLabAPIError, GitLabNotFoundError
from ..config.config import TransferConfig
from ..models.project import Project, ProjectImport
from .poller import ExportPoller, PollOutcome, SleepFunc


class TransferState(str, Enum):
    """Last stage a transfer reached."""

    IDLE = 'idle'
    EXPORTING = 'exporting'
    EXPORT_READY = 'export_ready'
    DOWNLOADED = 'downloaded'
    COLLISION_CHECKED = 'collision_checked'
    IMPORTED = 'imported'
    ARCHIVED = 'archived'
    CLEANED = 'cleaned'
    FAILED = 'failed'


class TransferResult(BaseModel):
    """Outcome of a pipeline run."""

    source_project: str = Field(..., description='Full path of the source project')
    destination_path: str = Field(
        ..., description='Full path of the project at the destination'
    )
    state: TransferState = Field(
        default=TransferState.IDLE, description='Last stage reached'
    )
    steps_completed: List[str] = Field(
        default_factory=list, description='Steps that succeeded, in order'
    )
    failed_step: Optional[str] = Field(default=None, description='Step that halted')
    error_message: Optional[str] = Field(
        default=None, description='Error message if failed'
    )
    warnings: List[str] = Field(default_factory=list, description='Warning messages')
    renamed_project: Optional[str] = Field(
        default=None, description='New path of a renamed colliding project'
    )
    destination_url: Optional[str] = Field(
        default=None, description='Web URL of the imported project'
    )

    started_at: Optional[datetime] = Field(default=None, description='Start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Completion time'
    )

    @property
    def success(self) -> bool:
        """Whether the project was imported and the source archived."""
        return self.state in (TransferState.ARCHIVED, TransferState.CLEANED)


class MigrationPipeline:
    """Moves a project from the source instance to the destination instance.

    Steps run strictly in order and each one catches and logs its own
    errors. The first step that fails halts the run; remote changes made
    by earlier steps are left in place.
    """

    def __init__(
        self,
        config: TransferConfig,
        source_client: GitLabClient,
        destination_client: GitLabClient,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.config = config
        self.source = source_client
        self.destination = destination_client
        self._sleep = sleep
        self.logger = logger.bind(component='MigrationPipeline')

        self.result = TransferResult(
            source_project=config.source_project,
            destination_path=config.destination_path,
        )
        self.steps = [
            self.trigger_export,
            self.poll_export_status,
            self.download_export,
            self.check_and_rename_existing_project,
            self.import_project_to_cloud,
            self.archive_source_project,
            self.delete_export_file,
        ]

    def _source_endpoint(self, *parts: str) -> str:
        return self.source.project_endpoint(self.config.source_project, *parts)

    def _advance(self, step: str, state: TransferState) -> bool:
        self.result.steps_completed.append(step)
        self.result.state = state
        return True

    def _fail(self, step: str, message: str) -> bool:
        self.logger.error(message)
        self.result.state = TransferState.FAILED
        self.result.failed_step = step
        self.result.error_message = message
        return False

    async def run(self) -> TransferResult:
        """Run every step in order, stopping at the first failure."""
        self.result.started_at = datetime.now()
        self.logger.info(
            f'Moving {self.config.source_project} to '
            f'{self.destination.config.url}/{self.config.destination_path}'
        )

        for step in self.steps:
            if not await step():
                break

        self.result.completed_at = datetime.now()

        if self.result.success:
            self.result.destination_url = (
                f'{self.destination.config.url}/{self.config.destination_path}'
            )
            self.logger.info(f'Check the process here: {self.result.destination_url}')
        return self.result

    async def trigger_export(self) -> bool:
        """Start the export job on the source instance."""
        step = 'trigger_export'
        try:
            response = await self.source.post(self._source_endpoint('export'))
        except GitLabAPIError as e:
            return self._fail(step, f'Error triggering export: {e}')

        if response.status_code != 202:
            return self._fail(step, f'Failed to trigger export: {response.data}')

        self.logger.info('Export triggered successfully.')
        return self._advance(step, TransferState.EXPORTING)

    async def poll_export_status(self) -> bool:
        """Wait until the export job has finished."""
        step = 'poll_export_status'
        poller = ExportPoller(
            self.source,
            self.config.source_project,
            poll_interval=self.config.poll_interval,
            retry_delay=self.config.retry_delay,
            max_retries=self.config.max_retries,
            reset_retries_on_success=self.config.reset_retries_on_success,
            sleep=self._sleep,
        )
        outcome = await poller.wait()

        if outcome is PollOutcome.EXHAUSTED:
            return self._fail(
                step,
                f'Gave up checking export status after '
                f'{poller.state.attempts} attempts: {poller.state.last_error}',
            )
        if outcome is PollOutcome.FAILED:
            return self._fail(step, 'Export failed on the source instance')

        self.logger.info('Export completed. Downloading the file...')
        return self._advance(step, TransferState.EXPORT_READY)

    async def download_export(self) -> bool:
        """Stream the finished export archive to the local file."""
        step = 'download_export'
        try:
            written = await self.source.download(
                self._source_endpoint('export', 'download'),
                self.config.export_path,
                chunk_size=self.config.chunk_size,
            )
        except (GitLabAPIError, OSError) as e:
            return self._fail(step, f'Error downloading the export file: {e}')

        self.logger.info(f'File downloaded successfully ({written} bytes).')
        return self._advance(step, TransferState.DOWNLOADED)

    async def check_and_rename_existing_project(self) -> bool:
        """Rename a destination project that already uses the target path."""
        step = 'check_and_rename_existing_project'
        lookup = self.destination.project_endpoint(self.config.destination_path)

        try:
            response = await self.destination.get(lookup)
        except GitLabNotFoundError:
            self.logger.info('Project does not exist. Proceeding with import...')
            return self._advance(step, TransferState.COLLISION_CHECKED)
        except GitLabAPIError as e:
            return self._fail(step, f'Error checking existing project: {e}')

        if response.status_code == 200:
            try:
                existing = Project(**response.data)
            except (ValueError, TypeError) as e:
                return self._fail(step, f'Unexpected project lookup response: {e}')

            self.logger.info('Project already exists. Renaming the existing project...')
            await self._rename_project(existing)

        return self._advance(step, TransferState.COLLISION_CHECKED)

    async def _rename_project(self, project: Project) -> None:
        # Import goes ahead whether or not the rename worked
        rename = project.renamed(self.config.rename_suffix)
        try:
            await self.destination.put(
                self.destination.project_endpoint(project.id), data=rename.model_dump()
            )
        except GitLabAPIError as e:
            message = f'Failed to rename existing project {project.path}: {e}'
            self.logger.warning(message)
            self.result.warnings.append(message)
            return

        self.result.renamed_project = rename.path
        self.logger.info(f'Project renamed to {rename.name} with path {rename.path}.')

    async def import_project_to_cloud(self) -> bool:
        """Upload the archive to create the project in the destination group."""
        step = 'import_project_to_cloud'
        try:
            response = await self.destination.upload(
                '/projects/import',
                self.config.export_path,
                fields={
                    'path': self.config.slug,
                    'namespace': self.config.destination_namespace,
                },
            )
        except (GitLabAPIError, OSError) as e:
            return self._fail(step, f'Error importing project: {e}')

        if response.status_code != 201:
            return self._fail(step, f'Failed to start import: {response.data}')

        try:
            imported = ProjectImport(**response.data)
        except (ValueError, TypeError) as e:
            # The import was accepted; only the details are unreadable
            self.logger.warning(f'Unexpected import response: {e}')
            self.logger.info('Import started successfully.')
        else:
            self.logger.info(
                f'Import started successfully (project id {imported.id}, '
                f'status {imported.import_status}).'
            )
        return self._advance(step, TransferState.IMPORTED)

    async def archive_source_project(self) -> bool:
        """Archive the project on the source instance."""
        step = 'archive_source_project'
        try:
            response = await self.source.post(self._source_endpoint('archive'))
        except GitLabAPIError as e:
            return self._fail(step, f'Error archiving source project: {e}')

        if response.status_code != 201:
            return self._fail(step, f'Failed to archive source project: {response.data}')

        self.logger.info('Source project archived successfully.')
        return self._advance(step, TransferState.ARCHIVED)

    async def delete_export_file(self) -> bool:
        """Remove the local archive. Failures here do not fail the transfer."""
        step = 'delete_export_file'
        try:
            self.config.export_path.unlink()
        except OSError as e:
            message = f'Error deleting export file: {e}'
            self.logger.error(message)
            self.result.warnings.append(message)
            return True

        self.logger.info('Export file deleted successfully.')
        return self._advance(step, TransferState.CLEANED)
