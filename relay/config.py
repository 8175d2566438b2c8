import os
import pathlib
from dotenv import load_dotenv

load_dotenv()

# SQLite file next to the repo by default; any async SQLAlchemy URL works
DB_PATH = pathlib.Path(__file__).parent.parent / "relay.db"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{DB_PATH}")

# the single privileged counterparty every user chat is implicitly with
OPERATOR_IDENTITY = os.getenv("OPERATOR_IDENTITY", "admin@example.com").strip().lower()

JWT_SECRET = os.getenv("JWT_SECRET", "dev_secret_change_me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_EXPIRE_MIN = int(os.getenv("JWT_EXPIRE_MIN", "60"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
EMPTY_CHAT_GC_ON_STARTUP = os.getenv("EMPTY_CHAT_GC_ON_STARTUP", "true").lower() in ("1", "true", "yes")

# ---- validation limits ----
MAX_TEXT_LEN = 10_000
MAX_IMAGE_LEN = 2_800_000
MAX_TITLE_LEN = 100
DISPLAY_TITLE_LEN = 28
MAX_PUBLIC_KEY_LEN = 200
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500

PLACEHOLDER_TITLE = "New Chat"
DEFAULT_STATUS_ROOM = "admin_heartbeat"
