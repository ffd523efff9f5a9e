"""
Error taxonomy for the clinic intake service.

UserInputError and SessionStateError never surface as system failures: the
step engine turns the first into a re-prompt and the assistant turns the second
into a fresh conversation. DependencyUnavailable marks a secondary store or
sink that could not be reached; booking continues in memory.
"""

from typing import Optional


class ClinicError(Exception):
    """Base class for intake service errors"""


class UserInputError(ClinicError):
    """Unrecognized option or malformed text at a menu step"""

    def __init__(self, prompt: str):
        super().__init__(prompt)
        self.prompt = prompt


class SessionStateError(ClinicError):
    """A step handler ran on a session missing the data it needs"""

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id


class DependencyUnavailable(ClinicError):
    """Persistence or notification sink could not be reached"""

    def __init__(self, dependency: str, reason: str = ""):
        super().__init__(f"{dependency} unavailable: {reason}" if reason else f"{dependency} unavailable")
        self.dependency = dependency
        self.reason = reason
