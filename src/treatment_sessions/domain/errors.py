"""Business errors raised by session operations."""

from uuid import UUID


class SessionError(Exception):
    """Base class for rejected session operations."""


class UnknownSession(SessionError):
    def __init__(self, session_id: UUID) -> None:
        super().__init__(f"Unknown session {session_id}")
        self.session_id = session_id


class UnknownTask(SessionError):
    def __init__(self, session_id: UUID, task_id: str) -> None:
        super().__init__(f"Task {task_id!r} is not part of session {session_id}")
        self.session_id = session_id
        self.task_id = task_id


class AlreadyStarted(SessionError):
    def __init__(self, session_id: UUID, status: str) -> None:
        super().__init__(f"Session {session_id} already started (status {status})")
        self.session_id = session_id
        self.status = status


class SessionNotActive(SessionError):
    def __init__(self, session_id: UUID, status: str) -> None:
        super().__init__(f"Session {session_id} is not active (status {status})")
        self.session_id = session_id
        self.status = status


class NotLost(SessionError):
    def __init__(self, session_id: UUID, status: str) -> None:
        super().__init__(f"Session {session_id} is not lost (status {status})")
        self.session_id = session_id
        self.status = status


class RecoveryDenied(SessionError):
    def __init__(self, owner_id: str, remaining: int) -> None:
        super().__init__(f"No recovery tokens remaining for {owner_id}")
        self.owner_id = owner_id
        self.remaining = remaining


class InvalidCounselling(SessionError):
    def __init__(self, session_id: UUID, reason: str) -> None:
        super().__init__(reason)
        self.session_id = session_id
        self.reason = reason
