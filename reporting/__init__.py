"""
Reporting Package.

Turns signals plus resolved prices into performance reports.

Modules:
- performance_report: Per-signal, per-asset and overall performance
"""

from reporting.performance_report import (
    PerformanceReport,
    PerformanceReportBuilder,
    SignalReport,
)


__all__ = [
    "PerformanceReport",
    "PerformanceReportBuilder",
    "SignalReport",
]
