"""
Verity — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from verity.models.profile import Profile
from verity.models.interest import InterestEvent, SeenRecord
from verity.models.match import Match, VerityDate, VideoCallError
from verity.models.message import Message
from verity.models.safety import Block, Report
from verity.models.notification import Notification

__all__ = [
    "Profile",
    "InterestEvent",
    "SeenRecord",
    "Match",
    "VerityDate",
    "VideoCallError",
    "Message",
    "Block",
    "Report",
    "Notification",
]
