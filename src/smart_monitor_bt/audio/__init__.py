"""Audio output routing and confirmation sound."""

from .pulse import AudioRouter
from .tone import ConfirmationTone

__all__ = ["AudioRouter", "ConfirmationTone"]
