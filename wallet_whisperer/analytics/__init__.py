"""
Analytics package: fresh wallet analysis pipeline and the tiered profile orchestrator.
"""

from wallet_whisperer.analytics.analytics_pipeline import WalletAnalysisPipeline
from wallet_whisperer.analytics.inflight import InFlightRegistry
from wallet_whisperer.analytics.orchestrator import ProfileOrchestrator

__all__ = ["InFlightRegistry", "ProfileOrchestrator", "WalletAnalysisPipeline"]
