from __future__ import annotations


class DynamoUpdateError(Exception):
    pass


class ValidationError(DynamoUpdateError):
    pass


class EncodingError(ValidationError):
    pass


class ConditionFailedError(DynamoUpdateError):
    pass


class NotFoundError(DynamoUpdateError):
    pass


class BuilderFinalizedError(DynamoUpdateError):
    def __init__(self, *, operation: str) -> None:
        super().__init__(f"{operation}: update builder has already been finalized")
        self.operation = operation


class AwsError(DynamoUpdateError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
