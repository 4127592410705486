"""Runtime constants shared across engine, adapters and support modules."""

# Pipeline stages, in board order
STAGE_INTAKE = "intake"
STAGE_PLAN = "plan"
STAGE_CODE = "code"
STAGE_AUDIT = "audit"
STAGE_DONE = "done"

STAGES = (STAGE_INTAKE, STAGE_PLAN, STAGE_CODE, STAGE_AUDIT, STAGE_DONE)
RUNNABLE_STAGES = (STAGE_PLAN, STAGE_CODE, STAGE_AUDIT)

# Audit outcome policy defaults
DEFAULT_ACCEPT_RATING = 8
DEFAULT_MAX_AUDIT_ATTEMPTS = 2

# Agent/provider fallbacks when the workspace does not configure them
FALLBACK_STAGE_AGENTS = {
    STAGE_PLAN: "planner",
    STAGE_CODE: "coder",
    STAGE_AUDIT: "auditor",
}
DEFAULT_AGENT_PROVIDERS = {
    "planner": "sonnet",
    "coder": "opus",
    "auditor": "opus",
}
DEFAULT_PROVIDER = "codex"

# Workspace layout (relative to the kanban root)
CONFIG_FILE = "config.json"
INBOX_FOLDER = "inbox"
PROJECTS_FOLDER = "projects"
AGENTS_FOLDER = "_agents"
PROVIDERS_FOLDER = "_providers"
CONTEXT_FOLDER = "_context"
LOGS_FOLDER = "_logs"
PROJECT_CONTEXT_FILE = "_context.md"
GLOBAL_CONTEXT_FILES = (
    "how-it-works.md",
    "architecture.md",
    "project-details.md",
)

# Output excerpt length used in adapter error messages
ERROR_EXCERPT_CHARS = 200

# Exit code reported for CLI invocations killed by their timeout
TIMEOUT_EXIT_CODE = 124
