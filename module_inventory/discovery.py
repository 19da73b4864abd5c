"""
Discovery of installed kernel modules.

Installed modules are the module files under /lib/modules/<release> for
the running kernel, possibly compressed (.ko.zst, .ko.xz, .ko.gz).
"""

import glob
import logging
import os
from typing import Callable, Dict, List, Optional, Sequence

from .config import DEFAULT_MODULE_SUFFIXES
from .errors import DiscoveryFailed
from .models import normalize_module_name
from .system import kernel_release

logger = logging.getLogger(__name__)


def module_name_from_path(file_path: str, suffixes: Sequence[str] = DEFAULT_MODULE_SUFFIXES) -> str:
    """
    Strip directory and module suffix from a module file path.

    Example: /lib/modules/6.1.0/kernel/fs/ext4/ext4.ko.zst -> ext4
    """
    base = os.path.basename(file_path)
    for suffix in sorted(suffixes, key=len, reverse=True):
        if base.endswith(suffix):
            return base[:-len(suffix)]
    return base


class ModuleDiscoverer:
    """Enumerates installed module identifiers for a kernel release."""

    def __init__(self, modules_root: str = "/lib/modules",
                 release: Optional[str] = None,
                 suffixes: Sequence[str] = DEFAULT_MODULE_SUFFIXES,
                 release_source: Callable[[], str] = kernel_release):
        """
        Args:
            modules_root: Directory holding one module tree per kernel release
            release: Kernel release to inspect; the running kernel when None
            suffixes: File suffixes that identify module files
            release_source: Callable returning the running kernel release
        """
        self.modules_root = modules_root
        self.release = release
        self.suffixes = list(suffixes)
        self._release_source = release_source
        self._paths: Dict[str, str] = {}
        self.last_error: Optional[DiscoveryFailed] = None
        self.current_release = ""

    def kernel_release(self) -> str:
        return self.release or self._release_source()

    def search_root(self) -> str:
        return os.path.join(self.modules_root, self.kernel_release())

    def discover(self) -> List[str]:
        """
        Enumerate installed modules.

        Returns:
            List[str]: Module names in enumeration order, without duplicates.
            Empty when enumeration failed; the reason is kept in last_error.
        """
        self.last_error = None
        self.current_release = ""
        self._paths = {}

        try:
            self.current_release = self.kernel_release()
        except OSError as e:
            return self._fail(f"Cannot determine kernel release: {e}")
        root = os.path.join(self.modules_root, self.current_release)

        if not os.path.isdir(root):
            return self._fail("Module directory not found", root)

        names = []
        for suffix in self.suffixes:
            pattern = os.path.join(glob.escape(root), '**', f'*{suffix}')
            for file_path in glob.glob(pattern, recursive=True):
                name = module_name_from_path(file_path, self.suffixes)
                key = normalize_module_name(name)
                if key in self._paths:
                    continue
                self._paths[key] = file_path
                names.append(name)

        if not names:
            return self._fail("No module files found", root)

        logger.debug("Discovered %d modules under %s", len(names), root)
        return names

    def locate(self, name: str) -> str:
        """Path of a module file found by the last discover() call, or ""."""
        return self._paths.get(normalize_module_name(name), "")

    def _fail(self, reason: str, root: str = "") -> List[str]:
        self.last_error = DiscoveryFailed(reason, root)
        logger.warning("Module discovery failed: %s", self.last_error)
        return []
