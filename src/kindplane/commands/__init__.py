"""kindplane commands."""

from .diagnostics import diagnostics
from .doctor import doctor
from .down import down
from .status import status
from .up import up

__all__ = ["up", "down", "status", "diagnostics", "doctor"]
