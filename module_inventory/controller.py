"""
Inventory controller.

Combines module discovery, metadata probing and residency checks into a
Snapshot, and routes load/unload requests through the lifecycle mutator.
Every mutation is followed by a full refresh; the loaded flag of a record
is never changed without asking the kernel again.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Mapping, Optional

from .config import ManagerConfig
from .discovery import ModuleDiscoverer
from .errors import ControllerBusy
from .lifecycle import LifecycleMutator
from .metadata import ElfModinfoSource, MetadataProber, ModinfoSource
from .models import NO_MODULES_NOTICE, ModuleRecord, MutationOutcome, Snapshot
from .residency import ResidencyChecker
from .system import CommandRunner

logger = logging.getLogger(__name__)


class InventoryController:
    """Owns the current Snapshot and is the only component that replaces it."""

    def __init__(self, discoverer: ModuleDiscoverer, prober: MetadataProber,
                 checker: ResidencyChecker, mutator: LifecycleMutator):
        self.discoverer = discoverer
        self.prober = prober
        self.checker = checker
        self.mutator = mutator
        self._snapshot = Snapshot.empty()
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Snapshot:
        """The most recent Snapshot (empty before the first refresh)."""
        return self._snapshot

    @contextmanager
    def _exclusive(self, operation: str):
        if not self._lock.acquire(blocking=False):
            raise ControllerBusy(f"Cannot {operation}: another inventory operation is running")
        try:
            yield
        finally:
            self._lock.release()

    def refresh(self) -> Snapshot:
        """
        Rebuild the inventory from the system.

        Returns:
            Snapshot: New snapshot, also stored as the current one. Empty,
            with a notice and the discovery error, when no modules were found.
        """
        with self._exclusive("refresh"):
            return self._refresh()

    def _refresh(self) -> Snapshot:
        names = self.discoverer.discover()
        release = self.discoverer.current_release

        if not names:
            error = self.discoverer.last_error
            notice = f"{NO_MODULES_NOTICE}: {error}" if error else NO_MODULES_NOTICE
            logger.info(notice)
            self._snapshot = Snapshot.empty(kernel_release=release, notice=notice, error=error)
            return self._snapshot

        # One listing per refresh; each module is checked against it by name
        listing = self.checker.listing()

        records = []
        for name in names:
            metadata = self.prober.probe(name)
            records.append(ModuleRecord(
                name=name,
                description=metadata.description,
                parameters=metadata.parameters,
                loaded=self.checker.is_loaded(name, listing),
                file_path=self.discoverer.locate(name)
            ))

        self._snapshot = Snapshot(records, kernel_release=release)
        logger.debug("Refreshed inventory: %d modules, %d loaded",
                     len(self._snapshot), self._snapshot.loaded_count)
        return self._snapshot

    def request_load(self, name: str,
                     params: Optional[Mapping[str, str]] = None) -> MutationOutcome:
        """
        Load a module, then refresh whatever the result.

        Returns:
            MutationOutcome: Mutation result, refreshed snapshot, and a
            MutationFailed error naming the module when modprobe failed
        """
        with self._exclusive("load"):
            result = self.mutator.load(name, params)
            return MutationOutcome(result, self._refresh())

    def request_unload(self, name: str) -> MutationOutcome:
        """Unload a module, then refresh whatever the result."""
        with self._exclusive("unload"):
            result = self.mutator.unload(name)
            return MutationOutcome(result, self._refresh())

    def can_load(self, name: str) -> bool:
        record = self._snapshot.get(name)
        return record is not None and not record.loaded

    def can_unload(self, name: str) -> bool:
        record = self._snapshot.get(name)
        return record is not None and record.loaded


def build_controller(config: Optional[ManagerConfig] = None,
                     runner: Optional[CommandRunner] = None) -> InventoryController:
    """Wire an InventoryController from configuration."""
    config = config or ManagerConfig()
    runner = runner or CommandRunner(timeout=config.command_timeout)

    discoverer = ModuleDiscoverer(config.modules_root, config.kernel_release,
                                  config.module_suffixes)
    if config.metadata_source == 'elf':
        source = ElfModinfoSource(discoverer.locate)
    else:
        source = ModinfoSource(runner)

    return InventoryController(
        discoverer=discoverer,
        prober=MetadataProber(source),
        checker=ResidencyChecker(runner, match=config.residency_match,
                                 source=config.residency_source,
                                 proc_modules_path=config.proc_modules_path),
        mutator=LifecycleMutator(runner, config.resolve_privileged_prefix(),
                                 force_unload=config.force_unload)
    )
