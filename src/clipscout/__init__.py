"""Clipscout - footage finder for news scripts.

Give it a segment headline and text and Clipscout searches a licensed
footage platform, ranks what it finds and downloads the best clip.
"""

__version__ = "1.0.0"

from .config import Config
from .llm_client import LLMClient
from .models.footage import (
    Candidate,
    MatchResult,
    RetrievalReport,
    SearchAnalysis,
    Segment,
)

__all__ = [
    "Config",
    "LLMClient",
    "Segment",
    "SearchAnalysis",
    "Candidate",
    "MatchResult",
    "RetrievalReport",
]
