"""
Assessment package: composite FMS-style records and their in-memory history.
"""

from .assessment_aggregator import Assessment, AssessmentAggregator, Metric, Score, assessment_input, composite_score, create_score
from .history import AnalysisHistory, AssessmentHistory

__all__ = [
    'Assessment',
    'AssessmentAggregator',
    'Metric',
    'Score',
    'assessment_input',
    'composite_score',
    'create_score',
    'AnalysisHistory',
    'AssessmentHistory',
]
