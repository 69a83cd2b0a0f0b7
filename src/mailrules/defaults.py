"""Default values shared across mailrules."""

# Mailbox scanned and watched when none is configured
DEFAULT_MAILBOX = "INBOX"

# System flag applied by `flag` and removed by `unflag` when no name is given
DEFAULT_FLAG = "\\Flagged"

# Capacity of the buffer between a fetch and its consumer
DEFAULT_FETCH_BUFFER_SIZE = 10

# Per-message deadline for stream deliveries, in seconds
DEFAULT_STREAM_TIMEOUT = 10.0

# How often the IDLE worker checks its stop signal, in seconds
DEFAULT_IDLE_POLL_INTERVAL = 30.0

# IDLE is re-issued this often on a quiet mailbox; servers may drop it after 30 minutes
DEFAULT_IDLE_REFRESH_INTERVAL = 25 * 60.0
