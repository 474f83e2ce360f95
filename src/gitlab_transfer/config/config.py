"""Configuration management for GitLab Transfer."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

DEFAULT_DESTINATION_URL = 'https://gitlab.com'
DEFAULT_SOURCE_PROJECT = 'nobi-corp/earn-investment-automation'
DEFAULT_NAMESPACE = 'hmcorp'
DEFAULT_EXPORT_FILE = 'export.tar.gz'

# Environment variables that must be present when loading from the environment
REQUIRED_ENV_VARS = ('SELF_HOSTED_GITLAB_URL', 'SELF_HOSTED_TOKEN', 'CLOUD_TOKEN')


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or invalid."""


class GitLabInstanceConfig(BaseModel):
    """Configuration for a GitLab instance."""

    url: str = Field(..., description='GitLab instance URL')
    token: str = Field(..., description='Personal access token')
    api_version: str = Field(default='v4', description='GitLab API version')
    timeout: int = Field(default=30, description='Request timeout in seconds')

    @validator('url')
    def validate_url(cls, v):
        """Validate GitLab URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('token')
    def validate_token(cls, v):
        """Reject empty tokens."""
        if not v or not v.strip():
            raise ValueError('Token must not be empty')
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v


class TransferConfig(BaseModel):
    """The project being moved and how the move is paced."""

    source_project: str = Field(
        default=DEFAULT_SOURCE_PROJECT,
        description='Full path of the project on the source instance',
    )
    destination_slug: Optional[str] = Field(
        default=None,
        description='Path of the new project; defaults to the last segment of source_project',
    )
    destination_namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        description='Group path the project is imported into',
    )
    export_file: str = Field(
        default=DEFAULT_EXPORT_FILE, description='Local path of the export archive'
    )

    poll_interval: float = Field(
        default=10.0, description='Seconds between export status checks'
    )
    retry_delay: float = Field(
        default=5.0, description='Seconds to wait after a failed status check'
    )
    max_retries: int = Field(
        default=5, description='Failed status checks tolerated before giving up'
    )
    reset_retries_on_success: bool = Field(
        default=False,
        description='Reset the failed status check counter after a successful check',
    )
    rename_suffix: str = Field(
        default='-delete',
        description='Suffix appended to a colliding destination project',
    )
    chunk_size: int = Field(
        default=1024 * 1024, description='Download chunk size in bytes'
    )

    @validator('source_project')
    def validate_source_project(cls, v):
        """Source project must be a full namespace/path reference."""
        v = v.strip('/')
        if '/' not in v:
            raise ValueError('source_project must include its namespace')
        return v

    @validator('destination_namespace')
    def validate_namespace(cls, v):
        """Validate namespace is not empty."""
        v = v.strip('/')
        if not v:
            raise ValueError('destination_namespace must not be empty')
        return v

    @validator('poll_interval', 'retry_delay')
    def validate_delays(cls, v):
        """Validate delays are not negative."""
        if v < 0:
            raise ValueError('Delays must not be negative')
        return v

    @validator('max_retries')
    def validate_max_retries(cls, v):
        """Validate max retries is not negative."""
        if v < 0:
            raise ValueError('max_retries must not be negative')
        return v

    @validator('chunk_size')
    def validate_chunk_size(cls, v):
        """Validate chunk size is positive."""
        if v <= 0:
            raise ValueError('chunk_size must be positive')
        return v

    @property
    def slug(self) -> str:
        """Path of the project at the destination."""
        return self.destination_slug or self.source_project.rsplit('/', 1)[-1]

    @property
    def destination_path(self) -> str:
        """Full path of the project at the destination."""
        return f'{self.destination_namespace}/{self.slug}'

    @property
    def export_path(self) -> Path:
        """Export archive location."""
        return Path(self.export_file)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for GitLab Transfer."""

    source: GitLabInstanceConfig = Field(
        ..., description='Self-managed source GitLab instance'
    )
    destination: GitLabInstanceConfig = Field(
        ..., description='Destination GitLab instance'
    )
    transfer: TransferConfig = Field(
        default_factory=TransferConfig, description='Transfer job settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables.

        Raises:
            ConfigurationError: If a required variable is not set
        """
        load_dotenv()

        for name in REQUIRED_ENV_VARS:
            if not os.getenv(name):
                raise ConfigurationError(f'{name} is not set')

        config_data = {
            'source': {
                'url': os.getenv('SELF_HOSTED_GITLAB_URL'),
                'token': os.getenv('SELF_HOSTED_TOKEN'),
            },
            'destination': {
                'url': os.getenv('CLOUD_GITLAB_URL', DEFAULT_DESTINATION_URL),
                'token': os.getenv('CLOUD_TOKEN'),
            },
            'transfer': {
                'source_project': os.getenv('SOURCE_PROJECT'),
                'destination_slug': os.getenv('DESTINATION_SLUG'),
                'destination_namespace': os.getenv('DESTINATION_NAMESPACE'),
                'export_file': os.getenv('EXPORT_FILE_PATH'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values so field defaults apply
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'url': 'https://gitlab.example.com',
                'token': 'your-self-hosted-personal-access-token',
                'api_version': 'v4',
                'timeout': 30,
            },
            'destination': {
                'url': DEFAULT_DESTINATION_URL,
                'token': 'your-gitlab-com-personal-access-token',
                'api_version': 'v4',
                'timeout': 30,
            },
            'transfer': {
                'source_project': DEFAULT_SOURCE_PROJECT,
                'destination_namespace': DEFAULT_NAMESPACE,
                'export_file': DEFAULT_EXPORT_FILE,
                'poll_interval': 10,
                'retry_delay': 5,
                'max_retries': 5,
                'reset_retries_on_success': False,
            },
            'logging': {
                'level': 'INFO',
                'file': 'transfer.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
