class ParseError(ValueError):
    """Inbound measurement text could not be turned into a Measurement."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class InvalidStateError(RuntimeError):
    pass
