"""
Domain layer containing the ingest core.

Submodules:
- ingest: Stream registry, process launcher, health monitor and supervisor.
"""
