"""GreenLease contract merge engine"""

from .engine import flatten_answers, merge_contract, normalize_answers
from .renumber import renumber_clauses
from .summary import format_property_address, generate_summary_section
from .tokens import tokenize

__all__ = [
    "merge_contract",
    "normalize_answers",
    "flatten_answers",
    "renumber_clauses",
    "tokenize",
    "generate_summary_section",
    "format_property_address",
]
