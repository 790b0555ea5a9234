"""Outcome reporting for faulty seeds."""

from sf_report.api import GitlabReporter, LocalPrintReporter, build_reporter

__all__ = ["GitlabReporter", "LocalPrintReporter", "build_reporter"]
