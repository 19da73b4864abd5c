"""
Exception types for the kernel module manager.

Read-path errors (discovery, metadata, residency) are normally recovered
where they occur and only logged or attached to a snapshot; mutation
failures are returned to the caller inside a MutationOutcome.
"""

from typing import Optional


class KernelModuleError(Exception):
    """Base class for all kernel module manager errors."""


class ConfigError(KernelModuleError):
    """Raised when configuration values are missing or invalid."""


class DiscoveryFailed(KernelModuleError):
    """Installed modules could not be enumerated."""

    def __init__(self, reason: str, root: str = ""):
        self.reason = reason
        self.root = root
        super().__init__(f"{reason} ({root})" if root else reason)


class MetadataUnavailable(KernelModuleError):
    """The module-info query failed for a module."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"No metadata for {name}: {reason}")


class ResidencyQueryFailed(KernelModuleError):
    """The resident module listing could not be read."""


class MutationFailed(KernelModuleError):
    """A privileged load or unload exited with a non-zero status."""

    def __init__(self, name: str, action: str, returncode: Optional[int] = None,
                 stderr: str = ""):
        self.name = name
        self.action = action
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Failed to {action} module {name}")


class ControllerBusy(KernelModuleError):
    """An inventory operation was started while another one is running."""
