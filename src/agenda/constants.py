#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

SLOT_MINUTES = 30
"""Scheduled occurrences last a positive multiple of this many minutes."""
DEFAULT_RULE_HORIZON = datetime.timedelta(days=365)
"""How far past the anchor a rule without an until cap generates occurrences."""
MONTHLY_SAFETY_BOUND = 365
DATE_FORMAT = "%Y-%m-%d"
FUZZY_MATCH_THRESHOLD = 90
