"""Social domain exports."""

from .models import FriendRequestRecord, FriendRequestStatus  # noqa: F401
from .schemas import FriendSummary, PendingFriendRequest, UserProfile  # noqa: F401
