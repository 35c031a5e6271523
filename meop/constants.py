"""Fallback values used when a step or config omits a setting."""

DEFAULT_RESEARCH_QUERY = "General research"
DEFAULT_OUTPUT_FORMAT = "problem"
DEFAULT_OUTPUT_LENGTH = "500"
DEFAULT_DELAY_MINUTES = 1
DEFAULT_DISPATCH_TIMEOUT = 30.0
DEFAULT_SLACK_CHANNEL = "all_bhva"
DEFAULT_DISCORD_CHANNEL = "admin"
DEFAULT_SCHEDULE_TIMEZONE = "America/New_York"
RUNS_TOPIC = "sequence-runs"
