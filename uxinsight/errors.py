class MalformedEventIgnored(ValueError):
    """Raised by parse_event; the classifier logs it and moves on."""

    def __init__(self, reason: str, raw=None):
        super().__init__(reason)
        self.reason = reason
        self.raw = raw


class SessionClosed(RuntimeError):
    def __init__(self, session_id: str):
        super().__init__(f"session {session_id} is no longer recording")
        self.session_id = session_id


class UnknownSession(KeyError):
    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self):
        return f"session {self.session_id} not found"
