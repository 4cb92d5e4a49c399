from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from content_catalog.application.data_quality import QualityIssue


class ConfigError(ValueError):
    pass


class StoreUnavailableError(Exception):
    """The shared Redis store could not be reached or timed out."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Store unavailable during {operation}{detail}")


class EventPublishError(Exception):
    def __init__(self, stream_key: str, partition_key: str, cause: Exception | None = None):
        self.stream_key = stream_key
        self.partition_key = partition_key
        self.cause = cause
        super().__init__(f"Failed to publish to {stream_key} partition={partition_key}: {cause}")


class CatalogConsistencyError(Exception):
    """Composed catalog data broke a structural or referential rule.

    Carries exactly one issue: the first violation found.
    """

    def __init__(self, issue: "QualityIssue"):
        self.issue = issue
        super().__init__(f"{issue.kind.value} content_id={issue.content_id}")
