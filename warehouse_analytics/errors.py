"""
Error taxonomy shared by ingestion, reporting and the HTTP layer.
"""


class WarehouseAnalyticsError(Exception):
    """Base class for all platform errors"""


class NotFoundError(WarehouseAnalyticsError):
    """No processed upload batch exists for the requested scope"""


class ReportValidationError(WarehouseAnalyticsError):
    """A report filter parameter is malformed"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class IngestionError(WarehouseAnalyticsError):
    """A source file or batch cannot be ingested consistently"""
