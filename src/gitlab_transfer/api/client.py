"""GitLab API client implementation."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote, urljoin

import aiohttp
from loguru import logger
from pydantic import BaseModel

from ..config.config import GitLabInstanceConfig
from .exceptions import (
    GitLabAPIError,
    GitLabAuthenticationError,
    GitLabNotFoundError,
    GitLabPermissionError,
    GitLabRateLimitError,
)

USER_AGENT = 'gitlab-transfer/0.1.0'

# Archive transfers can take far longer than a regular API call
TRANSFER_TIMEOUT = aiohttp.ClientTimeout(total=None)


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


class GitLabClient:
    """Asynchronous GitLab API client bound to a single access token."""

    def __init__(
        self,
        config: GitLabInstanceConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize GitLab client.

        Args:
            config: GitLab instance configuration
            session: Optional session to reuse; one is created on first use otherwise
        """
        if not config.token:
            raise GitLabAuthenticationError('No authentication token provided')

        self.config = config
        self.base_url = f'{config.url.rstrip("/")}/api/{config.api_version}'
        self.headers = {'Private-Token': config.token, 'User-Agent': USER_AGENT}
        self._session = session

        logger.info(f'Initialized GitLab client for {config.url}')

    @property
    def session(self) -> aiohttp.ClientSession:
        """Return the HTTP session, creating it if needed."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
        return self._session

    @staticmethod
    def project_endpoint(project: Any, *parts: str) -> str:
        """Build a project endpoint from an ID or a full path.

        Args:
            project: Numeric project ID or ``namespace/path`` string
            *parts: Additional path segments, e.g. ``'export', 'download'``

        Returns:
            Endpoint path with the project reference URL-encoded
        """
        endpoint = f'/projects/{quote(str(project), safe="")}'
        if parts:
            endpoint += '/' + '/'.join(parts)
        return endpoint

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    @staticmethod
    def _retry_after(value: Optional[str], default: int = 60) -> int:
        """Seconds to wait from a ``Retry-After`` header.

        Only the delta-seconds form is read; an HTTP-date or any other
        value falls back to ``default``.
        """
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        """Convert error responses to exceptions.

        Args:
            response: Raw HTTP response

        Raises:
            GitLabAPIError: For various API errors
        """
        status = response.status

        if status == 429:
            retry_after = self._retry_after(response.headers.get('Retry-After'))
            raise GitLabRateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status,
            )

        if status == 401:
            raise GitLabAuthenticationError('Authentication failed', status_code=status)

        if status == 403:
            raise GitLabPermissionError('Permission denied', status_code=status)

        if status == 404:
            raise GitLabNotFoundError('Resource not found', status_code=status)

        if status >= 400:
            error_data = None
            text = await response.text()
            try:
                error_data = json.loads(text)
                message = error_data.get('message', f'HTTP {status}')
            except (ValueError, AttributeError):
                message = f'HTTP {status}: {text}'

            raise GitLabAPIError(
                f'API request failed: {message}',
                status_code=status,
                response_data=error_data,
            )

    async def _handle_response(self, response: aiohttp.ClientResponse) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response
        """
        await self._raise_for_status(response)

        response_text = await response.text()
        try:
            data = json.loads(response_text) if response_text else None
        except ValueError:
            data = response_text

        return APIResponse(
            status_code=response.status,
            data=data,
            headers=dict(response.headers),
            success=200 <= response.status < 300,
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> APIResponse:
        """Make an API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: JSON request body
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        logger.debug(f'{method} {url}')

        try:
            async with self.session.request(
                method, url, params=params, json=data, headers=self.headers, **kwargs
            ) as response:
                return await self._handle_response(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f'Network error during {method} request: {e}')
            raise GitLabAPIError(f'Network error: {e}')

    async def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request."""
        return await self._request('GET', endpoint, params=params, **kwargs)

    async def post(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make POST request."""
        return await self._request('POST', endpoint, data=data, **kwargs)

    async def put(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make PUT request."""
        return await self._request('PUT', endpoint, data=data, **kwargs)

    async def download(
        self, endpoint: str, destination: Path, chunk_size: int = 1024 * 1024
    ) -> int:
        """Stream a binary response body to a local file.

        The call returns only after the last chunk has been written, and any
        error while reading the stream is raised rather than dropped.

        Args:
            endpoint: API endpoint
            destination: File to write, replaced if it exists
            chunk_size: Bytes read per chunk

        Returns:
            Number of bytes written

        Raises:
            GitLabAPIError: On HTTP or network errors
            OSError: If the file cannot be written
        """
        url = self._build_url(endpoint)
        destination = Path(destination)
        written = 0

        try:
            async with self.session.get(
                url, headers=self.headers, timeout=TRANSFER_TIMEOUT
            ) as response:
                await self._raise_for_status(response)
                with open(destination, 'wb') as f:
                    async for chunk in response.content.iter_chunked(chunk_size):
                        f.write(chunk)
                        written += len(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f'Network error during download: {e}')
            raise GitLabAPIError(f'Network error: {e}')

        logger.debug(f'Wrote {written} bytes to {destination}')
        return written

    async def upload(
        self,
        endpoint: str,
        file_path: Path,
        fields: Optional[Dict[str, str]] = None,
        file_field: str = 'file',
    ) -> APIResponse:
        """Upload a file as multipart form data.

        Args:
            endpoint: API endpoint
            file_path: File to send
            fields: Extra form fields sent alongside the file
            file_field: Form field name of the file

        Returns:
            API response

        Raises:
            GitLabAPIError: On HTTP or network errors
            OSError: If the file cannot be read
        """
        url = self._build_url(endpoint)
        file_path = Path(file_path)

        with open(file_path, 'rb') as f:
            form = aiohttp.FormData()
            form.add_field(
                file_field,
                f,
                filename=file_path.name,
                content_type='application/octet-stream',
            )
            for name, value in (fields or {}).items():
                form.add_field(name, value)

            try:
                async with self.session.post(
                    url, data=form, headers=self.headers, timeout=TRANSFER_TIMEOUT
                ) as response:
                    return await self._handle_response(response)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f'Network error during upload: {e}')
                raise GitLabAPIError(f'Network error: {e}')

    async def close(self) -> None:
        """Close the client session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        logger.info(f'GitLab client session for {self.config.url} closed')

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


class GitLabClientFactory:
    """Factory for creating GitLab API clients."""

    @staticmethod
    def create_client(config: GitLabInstanceConfig) -> GitLabClient:
        """Create GitLab client from configuration.

        Args:
            config: GitLab instance configuration

        Returns:
            Configured GitLab client

        Raises:
            GitLabAuthenticationError: If no token is configured
        """
        if not config.token:
            raise GitLabAuthenticationError('A private token must be provided')

        return GitLabClient(config)
