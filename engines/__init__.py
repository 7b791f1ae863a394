"""
Engines module - recommendations, gap analysis, reviews and remediation.

Components:
    - zpd_engine: Zone partition, ranked recommendations, learning paths
    - gap_detector: Missing / partial / forgotten / misconception gaps
    - review_queue: Spaced-repetition review queue
    - remediation_engine: Prioritized, prerequisite-respecting remediation plan
"""

from .zpd_engine import ZPDEngine, ZPDResult, Zone
from .gap_detector import GapDetector, GapReport, GapType
from .review_queue import ReviewQueue, ReviewPriority
from .remediation_engine import RemediationPlanner, RemediationResult

__all__ = [
    "ZPDEngine",
    "ZPDResult",
    "Zone",
    "GapDetector",
    "GapReport",
    "GapType",
    "ReviewQueue",
    "ReviewPriority",
    "RemediationPlanner",
    "RemediationResult",
]
