"""Service layer for the reference engine."""

from .conflict_resolution_service import ConflictResolutionService
from .duplicate_detection_service import DuplicateDetectionService
from .reference_manager import ConversationLocks, SuggestionReferenceManager
from .result_merge_service import ResultMergeService
from .scoring_service import ResultScoringService
from .similarity_service import SimilarityService
from .suggestion_service import SuggestionService, filter_suggestions

__all__ = [
    "ConflictResolutionService",
    "ConversationLocks",
    "DuplicateDetectionService",
    "ResultMergeService",
    "ResultScoringService",
    "SimilarityService",
    "SuggestionReferenceManager",
    "SuggestionService",
    "filter_suggestions",
]
