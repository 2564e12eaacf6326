"""
Error taxonomy shared by the map tools.

- input errors: the request itself cannot be served (no search term, unknown place)
- collaborator errors: a place directory, device position or LLM call failed

Both carry the name of the sub-call that failed so the caller can explain it.
Zero results are not errors.
"""


class MapToolError(Exception):
    kind = "input"

    def __init__(self, message: str, operation: str | None = None):
        self.message = message
        self.operation = operation
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "operation": self.operation, "message": self.message}


class CollaboratorError(MapToolError):
    kind = "collaborator"


class InvalidToolArgumentsError(MapToolError):
    pass


class MissingSearchTermError(MapToolError):
    def __init__(self, operation: str | None = "nearby_search"):
        super().__init__(
            "Tell me what to look for nearby: a keyword or a place type "
            "(for example: parking, coffee shop).",
            operation,
        )
