"""Export status polling."""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.client import GitLabClient
from ..api.exceptions import GitLabAPIError
from ..models.project import ProjectExport

SleepFunc = Callable[[float], Awaitable[None]]


class PollOutcome(str, Enum):
    """How a polling session ended."""

    FINISHED = 'finished'
    FAILED = 'failed'
    EXHAUSTED = 'exhausted'


class PollState(BaseModel):
    """Counters kept while polling an export."""

    attempts: int = Field(default=0, description='Status checks made')
    retries: int = Field(default=0, description='Retries charged to the budget')
    consecutive_failures: int = Field(
        default=0, description='Failed checks since the last successful one'
    )
    total_failures: int = Field(default=0, description='Failed checks overall')
    last_status: Optional[str] = Field(
        default=None, description='Most recent export_status read'
    )
    last_error: Optional[str] = Field(default=None, description='Most recent error')


class ExportPoller:
    """Polls the export endpoint of a project until the export is ready.

    A check that reads a status other than ``finished`` waits
    ``poll_interval`` seconds and checks again, with no limit on the number
    of such rounds. A check that fails charges one retry and waits
    ``retry_delay`` seconds; once ``max_retries`` retries have been charged
    the next failure ends polling.

    By default the retry budget is not refilled by successful checks, so
    failures spread over a long export share one budget. With
    ``reset_retries_on_success`` the budget applies to consecutive failures
    only.
    """

    def __init__(
        self,
        client: GitLabClient,
        project: str,
        poll_interval: float = 10.0,
        retry_delay: float = 5.0,
        max_retries: int = 5,
        reset_retries_on_success: bool = False,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.client = client
        self.project = project
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.reset_retries_on_success = reset_retries_on_success
        self._sleep = sleep
        self.state = PollState()
        self.logger = logger.bind(component='ExportPoller')

    async def fetch_status(self) -> ProjectExport:
        """Read the export status once."""
        response = await self.client.get(
            self.client.project_endpoint(self.project, 'export')
        )
        return ProjectExport(**(response.data or {}))

    async def wait(self) -> PollOutcome:
        """Poll until the export finishes, fails, or the retry budget runs out."""
        while True:
            self.state.attempts += 1

            try:
                export = await self.fetch_status()
            except (GitLabAPIError, ValueError, TypeError) as e:
                self.state.consecutive_failures += 1
                self.state.total_failures += 1
                self.state.last_error = str(e)

                if self.state.retries < self.max_retries:
                    self.state.retries += 1
                    self.logger.error(
                        f'Error checking export status, retrying... '
                        f'({self.state.retries}/{self.max_retries}): {e}'
                    )
                    await self._sleep(self.retry_delay)
                    continue

                self.logger.error(
                    f'Max retries reached. Error checking export status: {e}'
                )
                return PollOutcome.EXHAUSTED

            self.state.consecutive_failures = 0
            if self.reset_retries_on_success:
                self.state.retries = 0
            self.state.last_status = export.export_status

            if export.is_finished:
                self.logger.info('Export completed')
                return PollOutcome.FINISHED

            if export.is_failed:
                self.logger.error('Export failed on the source instance')
                return PollOutcome.FAILED

            self.logger.info(
                f'Export still in progress ({export.export_status}). Waiting...'
            )
            await self._sleep(self.poll_interval)
