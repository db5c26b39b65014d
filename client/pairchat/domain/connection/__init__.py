"""Connection domain exports."""

from .models import ConnectionState, ConnectionStatus, Identity

__all__ = [
	"ConnectionState",
	"ConnectionStatus",
	"Identity",
]
