"""
Exception hierarchy for navfusion.

Data conditions (missing, late or malformed samples) are reported as
values; these exceptions are reserved for misuse and bad configuration.
"""

class NavFusionError(Exception):
    """Base exception for all navfusion failures."""

class FusionConfigError(NavFusionError):
    """Raised for invalid engine configuration."""

class SourceError(NavFusionError):
    """Raised for unknown, duplicate or cyclic source definitions."""

class PipelineError(NavFusionError):
    """Raised when a source's progress indices fall out of order."""
