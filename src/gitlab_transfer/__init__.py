"""GitLab Transfer

Moves a single project from a self-managed GitLab instance to another GitLab
instance using the project export and import APIs, then archives the source.
"""

__version__ = '0.1.0'

from .cli.main import main

__all__ = ['main']
