class SessionNotFound(KeyError):
    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session {self.session_id} not found"


class SessionAlreadyEnded(RuntimeError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} is already ended")
        self.session_id = session_id
