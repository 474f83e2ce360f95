"""Transfer engine - main entry point for running a project transfer."""

import asyncio

from loguru import logger

from ..api.client import GitLabClientFactory
from ..config.config import Config
from .pipeline import MigrationPipeline, TransferResult
from .poller import SleepFunc


class TransferEngine:
    """Builds the clients for both instances and runs the pipeline."""

    def __init__(self, config: Config, sleep: SleepFunc = asyncio.sleep):
        """Initialize transfer engine.

        Args:
            config: Transfer configuration
            sleep: Coroutine used for poll and retry waits
        """
        self.config = config
        self.logger = logger.bind(component='TransferEngine')

        # One client per token
        self.source_client = GitLabClientFactory.create_client(config.source)
        self.destination_client = GitLabClientFactory.create_client(config.destination)

        self.pipeline = MigrationPipeline(
            config.transfer,
            self.source_client,
            self.destination_client,
            sleep=sleep,
        )

    async def run(self) -> TransferResult:
        """Run the transfer and release both clients.

        Returns:
            Transfer result
        """
        self.logger.info('Starting GitLab project transfer')

        async with self.source_client, self.destination_client:
            result = await self.pipeline.run()

        if result.success:
            self.logger.info('Transfer completed successfully')
        else:
            self.logger.error(f'Transfer halted at {result.failed_step}')
        return result
