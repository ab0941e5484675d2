from __future__ import annotations


class OctobotError(Exception):
    """Base for every error a command can render back to the caller."""


class ValidationError(OctobotError):
    pass


class InvalidSchedule(ValidationError):
    def __init__(self, expr: str, reason: str = "") -> None:
        self.expr = expr
        msg = f"Invalid schedule `{expr}`"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidChannel(ValidationError):
    def __init__(self, channel_id) -> None:
        self.channel_id = channel_id
        super().__init__(f"Channel {channel_id} is not a voice channel")


class AlreadyInMeeting(ValidationError):
    def __init__(self, member_name: str) -> None:
        self.member_name = member_name
        super().__init__(f"{member_name} is already in the meeting")


class NotInMeeting(ValidationError):
    def __init__(self, member_name: str) -> None:
        self.member_name = member_name
        super().__init__(f"{member_name} is not in the meeting")


class DuplicateMember(ValidationError):
    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"A member with {field}={value} already exists")


class NotFoundError(OctobotError):
    def __init__(self, kind: str, ident) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} `{ident}` not found")


class ConflictError(OctobotError):
    pass


class MessageCountMismatch(ConflictError):
    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Summary needs {actual} message(s) but {expected} were sent before; "
            "shorten the note or reports and resend"
        )


SummaryTooLong = MessageCountMismatch


class NoSummaryMessages(ConflictError):
    def __init__(self, summary_id: str) -> None:
        self.summary_id = summary_id
        super().__init__(f"Summary `{summary_id}` has never been sent")


class SummaryAlreadySent(ConflictError):
    def __init__(self, summary_id: str) -> None:
        self.summary_id = summary_id
        super().__init__(f"Summary `{summary_id}` was already sent; use resend")


class ExternalServiceError(OctobotError):
    def __init__(self, service: str, detail: str) -> None:
        self.service = service
        self.detail = detail
        super().__init__(f"{service} failed: {detail}")


class StateError(OctobotError):
    pass


class NoMeetingOngoing(StateError):
    def __init__(self) -> None:
        super().__init__("No meeting is ongoing")
