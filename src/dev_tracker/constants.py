STATE_DIR_NAME = ".dev_tracker"
STATE_FILE = "tracker.yaml"
LOCK_FILE = "tracker.lock"
CONFIG_FILE = "config.yaml"
STATE_VERSION = 1

ANIMATION_DURATION = 0.5  # seconds a completed slot stays Fading before it settles
UNDO_TIMEOUT = 5.0  # seconds an Undo Record stays redeemable
ACTIVITY_TAIL_LIMIT = 20

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000
DEFAULT_API_BASE_URL = "http://localhost:5000/api"
WINDOWS_LOCK_BYTES = 4096

SYSTEM_ACTOR = "System"
BACKLOG_ACTOR = "Backlog"
QUICK_ADD_ACTOR = "Quick Add"
CHAT_AUTHOR = "Me"

SAMPLE_DEVELOPERS = [
    {
        "id": 1,
        "name": "Jane",
        "avatar": "https://i.pravatar.cc/40?img=1",
        "done": 7,
        "quickFix": "Login bug",
        "primary": "Refactor Auth",
        "secondary": "Optimize DB",
        "status": "active",
    },
    {
        "id": 2,
        "name": "Mike",
        "avatar": "https://i.pravatar.cc/40?img=2",
        "done": 3,
        "quickFix": "UI glitch",
        "primary": "Build API",
        "secondary": "Write tests",
        "status": "active",
    },
    {
        "id": 3,
        "name": "Sara",
        "avatar": "https://i.pravatar.cc/40?img=3",
        "done": 5,
        "quickFix": "Navbar flicker",
        "primary": "New dashboard",
        "secondary": "Clean CSS",
        "status": "busy",
    },
    {
        "id": 4,
        "name": "Liam",
        "avatar": "https://i.pravatar.cc/40?img=4",
        "done": 2,
        "quickFix": "404 page issue",
        "primary": "Deploy flow",
        "secondary": "Docker cleanup",
        "status": "active",
    },
]

SAMPLE_BACKLOG = [
    {"id": 1, "task": "Fix dark mode", "priority": "medium", "estimatedHours": 4},
    {"id": 2, "task": "Style guide", "priority": "low", "estimatedHours": 8},
    {"id": 3, "task": "Audit logging", "priority": "high", "estimatedHours": 6},
    {"id": 4, "task": "User search", "priority": "medium", "estimatedHours": 3},
]
