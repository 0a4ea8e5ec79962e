# Expose the utilities other modules import most often
from utils.timezone import utc_now, parse_timestamp, to_iso, format_display, ensure_utc
from utils.retry import retry_with_backoff, TRANSIENT_ERRORS
from utils.logger import StructuredLogger, JsonFormatter, configure_logging

