"""
Privileged load and unload of a single module through modprobe.
"""

import logging
from typing import Mapping, Optional, Sequence

from .models import MutationResult
from .system import CommandRunner, privileged

logger = logging.getLogger(__name__)


class LifecycleMutator:
    """
    Direct pass-through to modprobe, run with the privileged prefix.

    No precondition checks are made: loading an already loaded module or
    unloading one that is not loaded is left to modprobe to report.
    """

    def __init__(self, runner: CommandRunner, privileged_prefix: Sequence[str] = (),
                 force_unload: bool = True, command: str = 'modprobe'):
        self.runner = runner
        self.privileged_prefix = list(privileged_prefix)
        self.force_unload = force_unload
        self.command = command

    def _execute(self, action: str, name: str, args) -> MutationResult:
        result = self.runner.run(privileged(self.privileged_prefix, args))
        if result.ok:
            logger.info("Module %s: %s succeeded", name, action)
            return MutationResult.ok(action, name)

        logger.warning("Module %s: %s failed (status %s): %s", name, action,
                       result.returncode, result.stderr.strip())
        return MutationResult.failed(action, name, returncode=result.returncode,
                                     stderr=result.stderr.strip(), timed_out=result.timed_out)

    def load(self, name: str, params: Optional[Mapping[str, str]] = None) -> MutationResult:
        """
        Insert a module into the kernel.

        Args:
            name: Module name
            params: Module parameters passed as key=value, unvalidated

        Returns:
            MutationResult: success iff modprobe exited with status 0
        """
        args = [self.command, name]
        if params:
            args.extend(f"{key}={value}" for key, value in params.items())
        return self._execute('load', name, args)

    def unload(self, name: str) -> MutationResult:
        """Remove a module from the kernel (modprobe -r, forced by default)."""
        args = [self.command, '-r']
        if self.force_unload:
            args.append('-f')
        args.append(name)
        return self._execute('unload', name, args)
