# SQLAlchemy models
from .base import Base
from .review import ReviewItem, SessionLog

__all__ = [
    "Base",
    "ReviewItem",
    "SessionLog",
]
