import os

MESSAGE_CAP = int(os.getenv("MESSAGE_CAP", "50"))

# Trailing slice of transcript sent to the model with every turn. Older turns
# are only reflected through the clinician summary.
CONTEXT_WINDOW_DAYS = float(os.getenv("CONTEXT_WINDOW_DAYS", "7"))

REASONING_TIMEOUT_SECONDS = float(os.getenv("REASONING_TIMEOUT_SECONDS", "45"))
EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("EXTRACTION_TIMEOUT_SECONDS", "90"))

SUMMARY_MAX_WORDS = int(os.getenv("SUMMARY_MAX_WORDS", "120"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE") or None


__all__ = [
    "MESSAGE_CAP",
    "CONTEXT_WINDOW_DAYS",
    "REASONING_TIMEOUT_SECONDS",
    "EXTRACTION_TIMEOUT_SECONDS",
    "SUMMARY_MAX_WORDS",
    "LOG_LEVEL",
    "LOG_FILE",
]
