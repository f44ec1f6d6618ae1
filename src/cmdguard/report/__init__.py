"""
Reporting module for cmdguard.

Output formats:
    - Console: Rich terminal output with tier icons and colors
    - JSON: Structured output for programmatic consumption

Example:
    from rich.console import Console
    from cmdguard.report import print_statistics, statistics_to_dict

    print_statistics(Console(), store.statistics())
"""

from cmdguard.report.console import (
    format_tier,
    print_records,
    print_statistics,
    print_verdict,
)
from cmdguard.report.json import (
    records_to_dict,
    statistics_to_dict,
    to_json,
    verdict_to_dict,
)

__all__ = [
    "format_tier",
    "print_records",
    "print_statistics",
    "print_verdict",
    "records_to_dict",
    "statistics_to_dict",
    "to_json",
    "verdict_to_dict",
]
