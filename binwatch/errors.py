from __future__ import annotations


class BinwatchError(RuntimeError):
    pass


class NotFoundError(BinwatchError):
    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class ValidationFailedError(BinwatchError):
    pass


class DependencyUnavailableError(BinwatchError):
    pass
