"""
Filtering and sorting functionality for module records.

This module contains classes for narrowing and ordering the records of
a Snapshot before they are displayed.
"""

import fnmatch
from typing import Iterable, List, Optional

from .models import ModuleRecord


class ModuleFilter:
    """Filter module records based on various criteria."""

    @staticmethod
    def filter_modules(modules: Iterable[ModuleRecord],
                       name_pattern: Optional[str] = None,
                       loaded: Optional[bool] = None,
                       with_options: bool = False) -> List[ModuleRecord]:
        """
        Filter module records.

        Args:
            modules: Records to filter
            name_pattern: Wildcard pattern for module names
            loaded: Keep only loaded (True) or only unloaded (False) modules
            with_options: Keep only modules that declare parameters

        Returns:
            List of matching records, in their original order
        """
        filtered = []

        for module in modules:
            if name_pattern and not fnmatch.fnmatch(module.name, name_pattern):
                continue
            if loaded is not None and module.loaded != loaded:
                continue
            if with_options and not module.has_parameters:
                continue
            filtered.append(module)

        return filtered


class ModuleSorter:
    """Sort module records by specified field."""

    @staticmethod
    def sort_modules(modules: Iterable[ModuleRecord], sort_by: str = 'name',
                     reverse: bool = False) -> List[ModuleRecord]:
        """
        Sort module records.

        Args:
            modules: Records to sort
            sort_by: 'name', or 'state' (loaded modules first, then by name)
            reverse: Reverse sort order
        """
        def sort_key(module):
            if sort_by == 'state':
                return (not module.loaded, module.name.lower())
            return module.name.lower()

        return sorted(modules, key=sort_key, reverse=reverse)
