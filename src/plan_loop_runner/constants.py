STATE_DIR_NAME = ".plan_loop"
STATE_FILE = "loop_state.json"
LOCK_FILE = ".lock"
CONFIG_FILE = "config.yaml"

DEFAULT_PLAN_DIR = f"{STATE_DIR_NAME}/plans"
DEFAULT_PLAN_FILE = f"{DEFAULT_PLAN_DIR}/plan.md"

DEFAULT_MAX_ITERATIONS = 0  # 0 = unlimited
DEFAULT_COMMIT_SCOPE = "feat(loop)"
DEFAULT_PROMISE_WINDOW = 5
DEFAULT_LOCK_TIMEOUT_SECONDS = 10

SLUG_MAX_LENGTH = 50
OVERVIEW_PREVIEW_CHARS = 200
DESCRIPTION_PREVIEW_CHARS = 60

MODE_LOOP = "loop"
MODE_SINGLE_TASK = "single-task"
MODE_LEGACY_DIRECT = "legacy-direct"

LOG_SERVICE = "plan-loop"

PROJECT_TOOL_FILES = {
    "justfile": "justfile",
    "package_json": "package.json",
    "makefile": "Makefile",
}
