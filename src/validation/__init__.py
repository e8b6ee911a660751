"""
Validation pipeline: fetch live content, ask the LLM for discrepancies, write a report.
"""

from .fetcher import ContentFetcher, RenderedContentFetcher, FetchResult
from .analyzer import DiscrepancyAnalyzer, AnalysisResult, AnalysisFailure
from .sources import SourceBundle, collect_sources
from .runner import RecordSelector, ValidationRunner, ValidationRunSummary

__all__ = [
    'ContentFetcher',
    'RenderedContentFetcher',
    'FetchResult',
    'DiscrepancyAnalyzer',
    'AnalysisResult',
    'AnalysisFailure',
    'SourceBundle',
    'collect_sources',
    'RecordSelector',
    'ValidationRunner',
    'ValidationRunSummary'
]
