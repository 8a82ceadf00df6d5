"""Cross-file feature alignment.

This module provides:
- Join aligner (greedy best-first matching in m/z x RT tolerance windows)
- AlignmentRow / AlignmentResult containers
"""

from .join import (
    AlignmentResult,
    AlignmentRow,
    JoinAligner,
    JoinAlignerParams,
    find_candidate_pairs,
    greedy_assign,
    join_align,
    match_peaks_to_rows,
    match_score,
)

__all__ = [
    'AlignmentResult',
    'AlignmentRow',
    'JoinAligner',
    'JoinAlignerParams',
    'find_candidate_pairs',
    'greedy_assign',
    'join_align',
    'match_peaks_to_rows',
    'match_score',
]
