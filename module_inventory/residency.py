"""
Which modules are currently resident in the running kernel.

The listing comes from lsmod (header line skipped) or directly from
/proc/modules; in both the first whitespace-separated field of each line
is the module name.
"""

import logging
from typing import List, Optional, Set

from .errors import ResidencyQueryFailed
from .models import normalize_module_name
from .system import CommandRunner

logger = logging.getLogger(__name__)


class ResidencyListing:
    """Lines of one resident-module listing, with lookup helpers."""

    def __init__(self, lines: List[str]):
        self.lines = [line.strip() for line in lines if line.strip()]
        self.names: Set[str] = {normalize_module_name(line.split()[0]) for line in self.lines}

    def contains_token(self, name: str) -> bool:
        return normalize_module_name(name) in self.names

    def contains_substring(self, name: str) -> bool:
        return any(name in line for line in self.lines)


class ResidencyChecker:
    """Reports whether a module is loaded."""

    def __init__(self, runner: CommandRunner, match: str = 'token',
                 source: str = 'lsmod', proc_modules_path: str = '/proc/modules'):
        """
        Args:
            runner: Command runner used for lsmod
            match: 'token' for exact module-name match, 'substring' to match
                the name anywhere in the listing
            source: 'lsmod' or 'proc' (read proc_modules_path directly)
            proc_modules_path: Location of the kernel's module table
        """
        self.runner = runner
        self.match = match
        self.source = source
        self.proc_modules_path = proc_modules_path

    def _read_lsmod(self) -> List[str]:
        result = self.runner.run(['lsmod'])
        if not result.ok:
            reason = "timed out" if result.timed_out else f"exited with status {result.returncode}"
            raise ResidencyQueryFailed(f"lsmod {reason}")
        # Skip header line ("Module  Size  Used by")
        return result.stdout.splitlines()[1:]

    def _read_proc_modules(self) -> List[str]:
        try:
            with open(self.proc_modules_path, 'r') as f:
                return f.read().splitlines()
        except OSError as e:
            raise ResidencyQueryFailed(f"cannot read {self.proc_modules_path}: {e}") from e

    def listing(self) -> ResidencyListing:
        """
        Fetch the current resident-module listing.

        Returns:
            ResidencyListing: Current listing; empty if the query failed
        """
        try:
            if self.source == 'proc':
                lines = self._read_proc_modules()
            else:
                lines = self._read_lsmod()
        except ResidencyQueryFailed as e:
            logger.warning("Cannot list loaded modules, treating all as unloaded: %s", e)
            lines = []
        return ResidencyListing(lines)

    def resident_modules(self) -> Set[str]:
        return set(self.listing().names)

    def is_loaded(self, name: str, listing: Optional[ResidencyListing] = None) -> bool:
        """
        Check whether a module is resident.

        Args:
            name: Module name
            listing: Listing to check against; queried fresh when None
        """
        if listing is None:
            listing = self.listing()
        if self.match == 'substring':
            return listing.contains_substring(name)
        return listing.contains_token(name)
