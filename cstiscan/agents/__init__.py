"""
Scan agents: the per-surface probers and the orchestrator driving them.
"""

from cstiscan.agents.orchestrator import ScanOrchestrator, run_scan

__all__ = ["ScanOrchestrator", "run_scan"]
