class SprintyError(Exception):
    """Base class for errors raised by the ordering and bulk layers."""


class NotFoundError(SprintyError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class UnsupportedDialectError(SprintyError):
    def __init__(self, dialect: str) -> None:
        super().__init__(f"insert-or-ignore is not supported on {dialect}")
        self.dialect = dialect
