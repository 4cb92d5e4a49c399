from dataclasses import dataclass


@dataclass(frozen=True)
class NotFound:
    resource: str
    key: str

    @property
    def message(self) -> str:
        return f"{self.resource} not found"


@dataclass(frozen=True)
class PreconditionFailed:
    message: str
