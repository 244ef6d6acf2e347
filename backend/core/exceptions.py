from typing import Iterable, Optional


class IntegrationError(Exception):
    """Base class for integration and data retrieval errors"""

    pass


class ConfigurationError(IntegrationError):
    """Raised when the service is started with unsafe settings"""

    pass


class EncryptionError(IntegrationError):
    pass


class DecryptionError(IntegrationError):
    """Credential blob is malformed or failed authentication"""

    pass


class UnsupportedDataTypeError(IntegrationError):
    def __init__(self, source: str, data_type: str, supported: Iterable[str] = ()):
        self.source = source
        self.data_type = data_type
        self.supported = list(supported)
        if self.supported:
            message = (
                f"Unsupported {source} data type: {data_type}. "
                f"Supported types: {', '.join(self.supported)}"
            )
        else:
            message = f"Unsupported data type '{data_type}': no adapter registered for source '{source}'"
        super().__init__(message)


class MissingCredentialsError(IntegrationError):
    def __init__(self, source: str, fields: Iterable[str] = ()):
        self.source = source
        self.fields = list(fields)
        detail = f": {', '.join(self.fields)}" if self.fields else ""
        super().__init__(f"Missing {source} credentials{detail}")


class IntegrationNotFoundError(IntegrationError):
    def __init__(self, integration_id: str):
        self.integration_id = integration_id
        super().__init__(f"Integration {integration_id} not found")


class SourceAPIError(IntegrationError):
    """A call to an external data source failed"""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source} API error: {message}")


class PermissionCheckUnavailableError(IntegrationError):
    """Membership could not be looked up, so access is refused"""

    pass


class AccessDeniedError(IntegrationError):
    pass
