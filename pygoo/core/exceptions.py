"""
pygoo - Custom Exception Classes

This module defines all custom exceptions used in pygoo.
Every manager translates the errors of the underlying Google API client
into one of these, so callers only need to catch PyGooError.
"""


class PyGooError(Exception):
    """
    Base exception for all pygoo errors.

    All custom exceptions inherit from this, making it easy to catch
    any pygoo-specific error with a single except clause.

    Attributes:
        status: HTTP status of the wrapped API error, if any
    """

    def __init__(self, message: str = "", status: int = None):
        self.status = status
        super().__init__(message)


class AuthenticationError(PyGooError):
    """
    Raised when authentication fails.

    Common causes:
    - No credentials configured
    - Credentials expired
    - Malformed service account key
    """

    def __init__(self, message: str, fix: str = None):
        """
        Args:
            message: Error description
            fix: Suggested fix command (e.g., "gcloud auth login")
        """
        self.fix = fix
        full_message = f"{message}"
        if fix:
            full_message += f"\n\nFix: {fix}"
        super().__init__(full_message)


class ConfigError(PyGooError):
    """Raised when a configuration file cannot be read or decoded."""
    pass


class GCEError(PyGooError):
    """
    Raised when a Compute Engine call fails.
    """

    def __init__(self, message: str, status: int = None):
        self.reason = message
        super().__init__(f"GCE operation fails: {message}", status=status)


class VMNotFoundError(GCEError):
    """
    Raised when the specified VM doesn't exist.
    """

    def __init__(self, vm_name: str, zone: str, project: str):
        """
        Args:
            vm_name: Name of the VM that wasn't found
            zone: Zone where we looked
            project: Project where we looked
        """
        self.vm_name = vm_name
        self.zone = zone
        self.project = project

        super().__init__(
            f"VM '{vm_name}' not found in zone '{zone}' (project: {project})",
            status=404
        )


class DiskNotFoundError(GCEError):
    """
    Raised when a disk doesn't exist.
    """

    def __init__(self, disk_name: str, zone: str, project: str):
        self.disk_name = disk_name
        self.zone = zone
        self.project = project

        super().__init__(
            f"Disk '{disk_name}' not found in zone '{zone}' (project: {project})",
            status=404
        )


class SnapshotNotFoundError(GCEError):
    """Raised when no snapshot matches a name prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"No snapshot found: prefix[{prefix}]")


class OperationTimeoutError(PyGooError):
    """
    Raised when a polled resource doesn't reach its target state in time.
    """

    def __init__(self, operation_name: str, resource: str, timeout: float):
        """
        Args:
            operation_name: Name of the operation (e.g., 'Create instance template')
            resource: Resource being waited on
            timeout: Seconds waited before giving up
        """
        self.operation_name = operation_name
        self.resource = resource
        self.timeout = timeout

        super().__init__(
            f"Operation '{operation_name}' timed out after {timeout}s: {resource}"
        )


class OperationFailedError(PyGooError):
    """
    Raised when a GCP operation finishes with an error payload.
    """

    def __init__(self, operation_name: str, reason: str):
        """
        Args:
            operation_name: Name of the operation
            reason: Why it failed
        """
        self.operation_name = operation_name
        self.reason = reason

        message = f"Operation '{operation_name}' failed: {reason}"
        super().__init__(message)


class GDSError(PyGooError):
    """
    Raised when a Datastore call fails.
    """

    def __init__(self, message: str = "GDS Error", status: int = None):
        super().__init__(message, status=status)


class EntityNotFoundError(GDSError):
    """Raised when a Datastore lookup finds no entity for the key."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"GDS Error: entity not found: {key}", status=404)


class UniqueViolationError(GDSError):
    """Raised by put_unique when the key is already taken."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Unique condition violation: {key}")


class TransactionError(GDSError):
    """Raised when a transaction is used after commit or rollback."""
    pass


class CloudSQLError(PyGooError):
    """Raised when a Cloud SQL admin call fails."""
    pass


class MonitoringError(PyGooError):
    """Raised when a Cloud Monitoring call fails or returns no data."""
    pass


class PubSubError(PyGooError):
    """Raised when a Pub/Sub call fails."""
    pass


class StorageError(PyGooError):
    """Raised when a Cloud Storage call fails."""
    pass


class RollingUpdateError(PyGooError):
    """Raised when a managed instance group update call fails."""

    def __init__(self, message: str = "RollingUpdate Error", status: int = None):
        super().__init__(message, status=status)
