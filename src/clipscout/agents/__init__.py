"""Agents for footage search, scoring, validation and retrieval."""

from .query_generator import QueryGenerator
from .search import CandidateSearch
from .visual_validator import VisualValidator
from .library import LibraryWatcher
from .history import RetrievalHistory
from .retrieval import RetrievalOrchestrator

__all__ = [
    "QueryGenerator",
    "CandidateSearch",
    "VisualValidator",
    "LibraryWatcher",
    "RetrievalHistory",
    "RetrievalOrchestrator",
]
