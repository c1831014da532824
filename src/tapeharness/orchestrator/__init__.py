from .report import build_report, write_report
from .runner import Orchestrator, RunRecord, TestResult, parse_filter, test_runner

__all__ = [
    "build_report",
    "write_report",
    "Orchestrator",
    "RunRecord",
    "TestResult",
    "parse_filter",
    "test_runner",
]
