"""Refresh cycles across all configured sources."""

from commdash.sync.orchestrator import RefreshReport, SourceResult, SyncOrchestrator

__all__ = ["RefreshReport", "SourceResult", "SyncOrchestrator"]
