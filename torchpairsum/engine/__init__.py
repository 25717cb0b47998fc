"""
Engine subpackage – Evaluation strategies and parallel splitting.
"""

from torchpairsum.engine.chunker import CPU_LOAD_VARIANCE, ParallelChunker
from torchpairsum.engine.evaluator import (
    BasicEvaluator,
    CheckEvaluator,
    EvaluatorConsistencyError,
    EvaluatorFlag,
    EvaluatorType,
    OptimizedEvaluator,
    create_evaluator,
    parse_evaluator_type,
)
from torchpairsum.engine.parallel import ParallelCalculator

__all__ = [
    'CPU_LOAD_VARIANCE',
    'ParallelChunker',
    'BasicEvaluator',
    'OptimizedEvaluator',
    'CheckEvaluator',
    'EvaluatorConsistencyError',
    'EvaluatorFlag',
    'EvaluatorType',
    'create_evaluator',
    'parse_evaluator_type',
    'ParallelCalculator',
]
