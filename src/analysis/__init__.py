"""AI analysis of horror stories.

Sequential failover over configured LLM providers (Gemini, DeepSeek, Mistral,
Cloudflare Workers AI, HuggingFace, OpenRouter, OpenAI) with a deterministic
mock fallback, plus the score parser and invalid-analysis rules shared by
ingestion, the event worker and the repair sweep.

Usage:
    from src.analysis import AnalysisConfig, ProviderChain

    chain = ProviderChain.from_config(AnalysisConfig())
    result = await chain.analyze(story)
    story.ai_analysis, story.scary_score = result.analysis, result.score
"""

from src.analysis.chain import ProviderChain
from src.analysis.config import AnalysisConfig
from src.analysis.constants import MOCK_ANALYSIS_PREFIX, MOCK_ANALYSIS_TEXT
from src.analysis.providers import BaseProvider, classify_failure
from src.analysis.schemas import AnalysisResult, ProviderOutcome, ProviderResult
from src.analysis.score_parser import parse_score
from src.analysis.validation import is_invalid_analysis, is_mock_analysis

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "BaseProvider",
    "MOCK_ANALYSIS_PREFIX",
    "MOCK_ANALYSIS_TEXT",
    "ProviderChain",
    "ProviderOutcome",
    "ProviderResult",
    "classify_failure",
    "is_invalid_analysis",
    "is_mock_analysis",
    "parse_score",
]
