"""Public API surface for sf_report."""

from sf_report.archive import archive_directory
from sf_report.gitlab_client import GitlabClient, encode_multipart
from sf_report.reporters import (
    GitlabReporter,
    LocalPrintReporter,
    build_issue_description,
    build_reporter,
)

__all__ = [
    "GitlabClient",
    "GitlabReporter",
    "LocalPrintReporter",
    "archive_directory",
    "build_issue_description",
    "build_reporter",
    "encode_multipart",
]
