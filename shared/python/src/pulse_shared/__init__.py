"""
pulse_shared — shared configuration, constants, date utilities and models
for the Palestine Pulse data pipeline.

Usage:
    from pulse_shared.config import settings
    from pulse_shared.constants import SOURCES, HDX_CATEGORIES
    from pulse_shared.time_utils import normalize_date, quarter_key
    from pulse_shared.models.validation import ValidationResult, ValidationIssue
"""

__version__ = "0.1.0"
