# constants.py
APP_NAME = "Stock Opname"

DATA_DIR = "data"
DB_FILE_NAME = "stock_opname.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# so_sessions holds at most one row, always under this id
CURRENT_SESSION_ID = "current_so_session"

HISTORY_ID_PREFIX = "SO-"

# trend analysis thresholds
RECENT_WINDOW = 5
CHRONIC_RUN_LENGTH = 3
OPEN_RUN_MIN_LENGTH = 2
FREQUENT_SHORTAGE_PCT = 50.0
RARELY_OFF_PCT = 10.0

UNCATEGORIZED = "Uncategorized"

# quiet period before a pending draft is written (ms)
DRAFT_SAVE_DELAY_MS = 800

AUDIT_LOGGER_NAME = "stock_opname.audit"
