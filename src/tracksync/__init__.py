"""
tracksync - reconciliation core for local/remote work item sync

Keeps a local file-backed record and a remote project-tracker record of the
same work item consistent, tolerating a slow, rate-limited or briefly
unreachable remote.

Key components:
- core/: Models, exceptions, store and client interfaces, logging utilities
- mapping/: Field transforms and the local/remote field mapper
- conflict/: Three-way conflict detection, resolution strategies, audit log
- resilience/: Retry with backoff, circuit breaker, retry statistics
- state/: File-backed snapshot, circuit state and local record stores
- connectors/: Jira REST client and an in-memory fake
- config/: YAML configuration with environment overrides
- runner/: Sync orchestrator and concurrent multi-entity runner
"""

__version__ = "0.1.0"
