"""
Remote tracker clients.
"""

from .jira_client import JiraRestClient
from .memory_client import InMemoryRemoteClient

__all__ = [
    "JiraRestClient",
    "InMemoryRemoteClient",
]
