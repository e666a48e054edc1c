"""Constants shared across the intake workflow SDK.

Several values can be overridden via environment variables so that
deployments can adjust clinical thresholds and upload limits without code
changes.
"""

import os

# --- PHQ-2 lookup tables ---
# Each question has its own authoritative table.  The "interest" question
# carries an extra top band ("everyday") that the "down/depressed" question
# does not.  Long-form keys are the codes produced from radio labels
# ("More than half the days" -> "more_than_half_the_days").
PHQ2_INTEREST_SCALE: dict[str, int] = {
    "not_at_all": 0,
    "several_days": 1,
    "more_than_half": 2,
    "more_than_half_the_days": 2,
    "nearly_everyday": 3,
    "nearly_every_day": 3,
    "everyday": 4,
}

PHQ2_DOWN_SCALE: dict[str, int] = {
    "not_at_all": 0,
    "several_days": 1,
    "more_than_half": 2,
    "more_than_half_the_days": 2,
    "nearly_everyday": 3,
    "nearly_every_day": 3,
}

# The extended down-scale variant also recognises "everyday" (total max 8).
PHQ2_DOWN_SCALE_EXTENDED: dict[str, int] = {**PHQ2_DOWN_SCALE, "everyday": 4}

# "standard" (max total 7) or "extended" (max total 8).
PHQ2_DOWN_SCALE_VARIANT = os.getenv("PHQ2_DOWN_SCALE_VARIANT", "standard")

# Band thresholds: total < WATCH -> normal, < ELEVATED -> watch, else elevated.
# A PHQ-2 total of 3 or more is the usual positive-screen cut-off.
PHQ2_WATCH_THRESHOLD = int(os.getenv("PHQ2_WATCH_THRESHOLD", "3"))
PHQ2_ELEVATED_THRESHOLD = int(os.getenv("PHQ2_ELEVATED_THRESHOLD", "4"))

# --- Media capture ---
# Upper bound for a single uploaded or captured artifact.
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Pillow format used to encode camera frames ("JPEG" or "PNG").
CAPTURE_IMAGE_FORMAT = os.getenv("CAPTURE_IMAGE_FORMAT", "JPEG").upper()
CAPTURE_JPEG_QUALITY = int(os.getenv("CAPTURE_JPEG_QUALITY", "85"))

# MIME types accepted by file fields that do not declare their own list.
DEFAULT_ACCEPT: list[str] = ["image/jpeg", "image/png", "application/pdf"]

# Image MIME types that must decode with Pillow before being accepted.
IMAGE_MIME_TYPES: set[str] = {"image/jpeg", "image/png", "image/webp"}

# Camera facing mode per capture purpose; documents use the rear camera.
DEFAULT_FACING_MODE = "environment"
