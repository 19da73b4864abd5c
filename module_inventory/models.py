"""
Data models for the module inventory.

This module contains the value types passed between the inventory
controller and its callers: one record per installed module, the
point-in-time snapshot that groups them, and the results of privileged
load/unload actions.
"""

import datetime
from typing import Dict, Iterator, List, Optional, Sequence

from .errors import DiscoveryFailed, MutationFailed

DESCRIPTION_NOT_FOUND = "not found"
NO_OPTIONS = "no options"
PARAMETER_SEPARATOR = "; "

NO_MODULES_NOTICE = "No kernel modules found"


def normalize_module_name(name: str) -> str:
    """The kernel treats '-' and '_' in module names as the same character."""
    return name.replace('-', '_')


class ModuleRecord:
    """Represents one installed kernel module and its current state."""

    __slots__ = ('name', 'description', 'parameters', 'loaded', 'file_path')

    def __init__(self, name: str, description: str = DESCRIPTION_NOT_FOUND,
                 parameters: str = NO_OPTIONS, loaded: bool = False,
                 file_path: str = ""):
        """
        Initialize a ModuleRecord instance.

        Args:
            name: Module name without directory or file extension
            description: Module description, or the "not found" sentinel
            parameters: Joined parameter descriptors, or the "no options" sentinel
            loaded: Whether the module is resident in the running kernel
            file_path: Full path to the installed module file
        """
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'description', description)
        object.__setattr__(self, 'parameters', parameters)
        object.__setattr__(self, 'loaded', bool(loaded))
        object.__setattr__(self, 'file_path', file_path)

    def __setattr__(self, key, value):
        raise AttributeError(f"ModuleRecord is read-only, cannot set '{key}'")

    def __delattr__(self, key):
        raise AttributeError(f"ModuleRecord is read-only, cannot delete '{key}'")

    def __eq__(self, other) -> bool:
        if not isinstance(other, ModuleRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.name, self.description, self.parameters,
                     self.loaded, self.file_path))

    def __str__(self) -> str:
        """Return string representation of the module."""
        file_path_str = self.file_path if self.file_path else "N/A"
        return (f"Module: {self.name}\n"
                f"  Description: {self.description}\n"
                f"  Options: {self.parameters}\n"
                f"  State: {self.state}\n"
                f"  File Path: {file_path_str}\n")

    def __repr__(self) -> str:
        return (f"ModuleRecord(name='{self.name}', loaded={self.loaded}, "
                f"description='{self.description}')")

    @property
    def state(self) -> str:
        return "Loaded" if self.loaded else "Unloaded"

    @property
    def has_parameters(self) -> bool:
        return self.parameters != NO_OPTIONS

    def parameter_list(self) -> List[str]:
        """Split the joined parameter string back into descriptors."""
        if not self.has_parameters:
            return []
        return [part.strip() for part in self.parameters.split(PARAMETER_SEPARATOR.strip())
                if part.strip()]

    def to_dict(self) -> dict:
        """Convert module to dictionary representation."""
        return {
            'name': self.name,
            'description': self.description,
            'parameters': self.parameters,
            'loaded': self.loaded,
            'file_path': self.file_path
        }


class Snapshot:
    """
    Immutable point-in-time inventory of installed modules.

    A snapshot is never patched; the controller replaces it with a new one
    on every refresh.
    """

    def __init__(self, records: Sequence[ModuleRecord] = (),
                 kernel_release: str = "", notice: str = "",
                 error: Optional[DiscoveryFailed] = None,
                 created_at: Optional[datetime.datetime] = None):
        """
        Initialize a Snapshot instance.

        Args:
            records: Module records, one per discovered module
            kernel_release: Release of the kernel the inventory was taken for
            notice: Informational message for the user (e.g. nothing found)
            error: Discovery error that caused an empty inventory, if any
            created_at: Time the snapshot was assembled (defaults to now, UTC)

        Raises:
            ValueError: If two records share the same name ('-' and '_' compare equal)
        """
        records = tuple(records)
        seen = set()
        for record in records:
            key = normalize_module_name(record.name)
            if key in seen:
                raise ValueError(f"Duplicate module name in snapshot: {record.name}")
            seen.add(key)

        self._records = records
        self._index = {normalize_module_name(record.name): record for record in records}
        self.kernel_release = kernel_release
        self.notice = notice
        self.error = error
        self.created_at = created_at or datetime.datetime.now(datetime.timezone.utc)

    @classmethod
    def empty(cls, kernel_release: str = "", notice: str = "",
              error: Optional[DiscoveryFailed] = None) -> "Snapshot":
        return cls((), kernel_release=kernel_release, notice=notice, error=error)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ModuleRecord]:
        return iter(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __contains__(self, name) -> bool:
        return normalize_module_name(name) in self._index

    def __repr__(self) -> str:
        return (f"Snapshot(modules={len(self._records)}, loaded={self.loaded_count}, "
                f"kernel_release='{self.kernel_release}')")

    @property
    def records(self) -> tuple:
        return self._records

    @property
    def is_empty(self) -> bool:
        return not self._records

    @property
    def loaded_count(self) -> int:
        return sum(1 for record in self._records if record.loaded)

    def get(self, name: str) -> Optional[ModuleRecord]:
        return self._index.get(normalize_module_name(name))

    def names(self) -> List[str]:
        return [record.name for record in self._records]

    def same_records(self, other: "Snapshot") -> bool:
        """Compare the module records of two snapshots, ignoring timestamps."""
        return self._records == other.records

    def to_dict(self) -> Dict:
        return {
            'kernel_release': self.kernel_release,
            'created_at': self.created_at.isoformat(),
            'notice': self.notice,
            'modules': [record.to_dict() for record in self._records]
        }


class MutationResult:
    """Outcome of a single privileged load or unload action."""

    def __init__(self, success: bool, action: str, name: str,
                 returncode: Optional[int] = None, stderr: str = "",
                 timed_out: bool = False):
        self.success = success
        self.action = action
        self.name = name
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out

    @classmethod
    def ok(cls, action: str, name: str) -> "MutationResult":
        return cls(True, action, name, returncode=0)

    @classmethod
    def failed(cls, action: str, name: str, returncode: Optional[int] = None,
               stderr: str = "", timed_out: bool = False) -> "MutationResult":
        return cls(False, action, name, returncode=returncode, stderr=stderr,
                   timed_out=timed_out)

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        return (f"MutationResult(success={self.success}, action='{self.action}', "
                f"name='{self.name}', returncode={self.returncode})")

    def to_error(self) -> Optional[MutationFailed]:
        if self.success:
            return None
        return MutationFailed(self.name, self.action, self.returncode, self.stderr)


class MutationOutcome:
    """
    What the controller reports back after a load or unload request.

    Holds the raw mutation result, the snapshot taken right after it, and
    the user-facing error when the action failed.
    """

    _PAST_TENSE = {'load': 'loaded', 'unload': 'unloaded'}

    def __init__(self, result: MutationResult, snapshot: Snapshot):
        self.result = result
        self.snapshot = snapshot
        self.error = result.to_error()

    @property
    def success(self) -> bool:
        return self.result.success

    @property
    def name(self) -> str:
        return self.result.name

    @property
    def message(self) -> str:
        if self.success:
            done = self._PAST_TENSE.get(self.result.action, self.result.action)
            return f"Module {self.result.name} successfully {done}."
        return str(self.error)

    def __repr__(self) -> str:
        return f"MutationOutcome(success={self.success}, name='{self.name}')"
