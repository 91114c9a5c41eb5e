"""
Model Evaluation for the FDNL engine
"""

from .evaluator import (
    EvaluationResult,
    Outcome,
    build_survey_rows,
    balance_survey_rows,
    classify_outcome,
    summarize_outcomes,
    evaluate
)

__all__ = [
    'EvaluationResult',
    'Outcome',
    'build_survey_rows',
    'balance_survey_rows',
    'classify_outcome',
    'summarize_outcomes',
    'evaluate'
]
