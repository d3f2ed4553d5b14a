from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware column default"""
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================

class CheckpointStatus(str, enum.Enum):
    """Harvest progress status for a project"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
