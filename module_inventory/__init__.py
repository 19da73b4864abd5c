"""
Module Inventory Package

Inventories installed Linux kernel modules, reports their description,
parameters and residency, and loads or unloads them through modprobe.
"""

from .config import ManagerConfig, load_config
from .controller import InventoryController, build_controller
from .discovery import ModuleDiscoverer
from .errors import (
    KernelModuleError, ConfigError, DiscoveryFailed, MetadataUnavailable,
    ResidencyQueryFailed, MutationFailed, ControllerBusy
)
from .filters import ModuleFilter, ModuleSorter
from .formatters import JSONFormatter, CSVFormatter, TableFormatter
from .lifecycle import LifecycleMutator
from .metadata import MetadataProber, ModinfoSource, ElfModinfoSource
from .models import (
    ModuleRecord, Snapshot, MutationResult, MutationOutcome,
    DESCRIPTION_NOT_FOUND, NO_OPTIONS
)
from .residency import ResidencyChecker
from .system import CommandRunner, CommandResult

__version__ = "1.0.0"

__all__ = [
    "ManagerConfig",
    "load_config",
    "InventoryController",
    "build_controller",
    "ModuleDiscoverer",
    "MetadataProber",
    "ModinfoSource",
    "ElfModinfoSource",
    "ResidencyChecker",
    "LifecycleMutator",
    "CommandRunner",
    "CommandResult",
    "ModuleRecord",
    "Snapshot",
    "MutationResult",
    "MutationOutcome",
    "DESCRIPTION_NOT_FOUND",
    "NO_OPTIONS",
    "ModuleFilter",
    "ModuleSorter",
    "JSONFormatter",
    "CSVFormatter",
    "TableFormatter",
    "KernelModuleError",
    "ConfigError",
    "DiscoveryFailed",
    "MetadataUnavailable",
    "ResidencyQueryFailed",
    "MutationFailed",
    "ControllerBusy"
]
