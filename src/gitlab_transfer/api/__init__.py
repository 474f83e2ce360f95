"""GitLab API access."""

from .client import APIResponse, GitLabClient, GitLabClientFactory
from .exceptions import (
    GitLabAPIError,
    GitLabAuthenticationError,
    GitLabNotFoundError,
    GitLabPermissionError,
    GitLabRateLimitError,
)

__all__ = [
    'APIResponse',
    'GitLabClient',
    'GitLabClientFactory',
    'GitLabAPIError',
    'GitLabAuthenticationError',
    'GitLabNotFoundError',
    'GitLabPermissionError',
    'GitLabRateLimitError',
]
