"""
Centralized constants for Code Migrator.
Fixed batch policy numbers live here; Settings may override the tunable ones.
"""

from pathlib import Path

# ===========================================
# WORKER POOL
# ===========================================
BATCH_MAX_CONCURRENCY = 8             # workers per batch, capped by item count
ITEM_TIMEOUT_SECONDS = 120            # per conversion call
BATCH_DEADLINE_SECONDS = 600          # whole pool, 10 minutes

# ===========================================
# JOB REGISTRY
# ===========================================
JOB_RETENTION_SECONDS = 3600          # evict jobs older than 1 hour
JOB_EVICTION_INTERVAL_SECONDS = 300   # how often the eviction loop runs

DEFAULT_STEP_NAMES = (
    "Extracting archive",
    "Converting files",
    "Creating final package",
)

# Step indexes used by the orchestrator
STEP_EXTRACT = 0
STEP_CONVERT = 1
STEP_PACKAGE = 2

# Progress banding inside a step: first 10% setup, last 10% teardown
STEP_PROGRESS_START = 10
STEP_PROGRESS_SPAN = 80

# ===========================================
# LLM CONVERSION
# ===========================================
LLM_MAX_TOKENS = 4000
LLM_TEMPERATURE = 0.1
LLM_DEFAULT_MODEL = "gpt-4o-mini"

# ===========================================
# FILE HANDLING
# ===========================================
SKIP_DIRECTORIES = frozenset({"node_modules", "bin", "obj", "packages", "__MACOSX"})
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
UPLOAD_DIR = DATA_DIR / "uploads"
ZIPS_DIR = DATA_DIR / "zips"
TEMP_DIR = DATA_DIR / "temp"
LOGS_DIR = DATA_DIR / "logs"
UPLOAD_EXTENSIONS = (".zip",)
MAX_UPLOAD_SIZE_MB = 50

# ===========================================
# API / SERVER
# ===========================================
WEBSOCKET_QUEUE_SIZE = 256            # per-connection event buffer
WEBSOCKET_HEARTBEAT = 30              # seconds

# ===========================================
# LOGGING
# ===========================================
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'migrator.log'                # under LOGS_DIR, or $LOGS_DIR when set
LOG_MAX_SIZE_MB = 5
LOG_BACKUP_COUNT = 5
