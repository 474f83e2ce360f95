"""Transfer pipeline and engine."""

from .poller import ExportPoller, PollOutcome, PollState
from .pipeline import MigrationPipeline, TransferResult, TransferState
from .engine import TransferEngine

__all__ = [
    'ExportPoller',
    'PollOutcome',
    'PollState',
    'MigrationPipeline',
    'TransferResult',
    'TransferState',
    'TransferEngine',
]
