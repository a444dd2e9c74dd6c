"""Answer relay package."""

from .config import PipelineConfig, RateLimitConfig, ScoringConfig, Settings
from .ingest.normalizer import ResponseNormalizer
from .pipeline.similar import SimilarAnswerPipeline
from .ratelimit.limiter import RateLimiter, TokenBucket
from .scoring.scorer import RelevanceScorer

__all__ = [
    "PipelineConfig",
    "RateLimitConfig",
    "RateLimiter",
    "RelevanceScorer",
    "ResponseNormalizer",
    "ScoringConfig",
    "Settings",
    "SimilarAnswerPipeline",
    "TokenBucket",
]
