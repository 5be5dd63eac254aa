"""Services that orchestrate crawling, analysis, and repair."""

from src.services.analysis_worker import AnalysisWorker, StoryFetchedConsumer
from src.services.crawler_service import CrawlerService
from src.services.repair_service import RepairService
from src.services.story_processor import AnalysisMode, StoryProcessor

__all__ = [
    "AnalysisMode",
    "AnalysisWorker",
    "CrawlerService",
    "RepairService",
    "StoryFetchedConsumer",
    "StoryProcessor",
]
