"""
Output formatters for module inventory data.

This module contains classes for rendering a list of module records into
a text table, JSON or CSV.
"""

import csv
import io
import json
from typing import List, Optional

from .models import ModuleRecord, Snapshot


class BaseFormatter:
    """Base class for all formatters."""

    def format(self, modules: List[ModuleRecord],
               snapshot: Optional[Snapshot] = None) -> str:
        """
        Format module records into an output string.

        Args:
            modules: Records to render (possibly filtered and sorted)
            snapshot: Snapshot the records came from, for header information

        Returns:
            str: Formatted output
        """
        raise NotImplementedError


class JSONFormatter(BaseFormatter):
    """Formatter for JSON output."""

    def format(self, modules: List[ModuleRecord],
               snapshot: Optional[Snapshot] = None) -> str:
        data = {
            'kernel_release': snapshot.kernel_release if snapshot else '',
            'created_at': snapshot.created_at.isoformat() if snapshot else '',
            'notice': snapshot.notice if snapshot else '',
            'modules': [module.to_dict() for module in modules]
        }
        return json.dumps(data, indent=2)


class CSVFormatter(BaseFormatter):
    """Formatter for CSV output."""

    def format(self, modules: List[ModuleRecord],
               snapshot: Optional[Snapshot] = None) -> str:
        output = io.StringIO()
        writer = csv.writer(output)

        writer.writerow(['Name', 'Description', 'Options', 'State', 'File Path'])
        for module in modules:
            writer.writerow([
                module.name,
                module.description,
                module.parameters,
                module.state,
                module.file_path
            ])

        return output.getvalue()


class TableFormatter(BaseFormatter):
    """Plain-text table, or one block per module in detailed mode."""

    def __init__(self, show_details: bool = False, quiet: bool = False):
        self.show_details = show_details
        self.quiet = quiet

    @staticmethod
    def _truncate(text: str, width: int) -> str:
        return text if len(text) <= width else text[:width - 3] + "..."

    def format(self, modules: List[ModuleRecord],
               snapshot: Optional[Snapshot] = None) -> str:
        lines = []

        if not self.quiet:
            release = f" for kernel {snapshot.kernel_release}" if snapshot and snapshot.kernel_release else ""
            loaded = sum(1 for module in modules if module.loaded)
            lines.append(f"Kernel Modules{release} ({len(modules)} total, {loaded} loaded)")
            lines.append("=" * 60)
            if snapshot is not None and snapshot.notice:
                lines.append(snapshot.notice)

        if self.show_details:
            for i, module in enumerate(modules, 1):
                lines.append(f"{i}. {module}")
            return "\n".join(lines)

        if not self.quiet:
            lines.append(f"| {'Module Name':<25} | {'State':<10} | {'Description':<50} | {'Options':<40} |")
            lines.append("|" + "-" * 27 + "|" + "-" * 12 + "|" + "-" * 52 + "|" + "-" * 42 + "|")

        for module in modules:
            lines.append(f"| {module.name:<25} | {module.state:<10} | "
                         f"{self._truncate(module.description, 50):<50} | "
                         f"{self._truncate(module.parameters, 40):<40} |")

        return "\n".join(lines)
