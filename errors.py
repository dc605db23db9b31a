"""
errors.py — Failure taxonomy for the report job.

Only AuditWriteError is survivable; everything else aborts the run.
"""


class ReportJobError(Exception):
    """Base class for all report job failures."""


class ConfigError(ReportJobError):
    """Settings file or body template missing or malformed."""


class UpstreamError(ReportJobError):
    """A feed page request did not come back with a usable 2xx response."""


class PublishError(ReportJobError):
    """The publish call failed or was rejected."""


class AuditWriteError(ReportJobError):
    """The audit document could not be written."""
