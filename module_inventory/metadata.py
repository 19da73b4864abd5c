"""
Static per-module metadata: description and declared parameters.

Metadata comes from a module-info source that yields labeled text in the
format printed by modinfo ("description:  ...", one "parm:  ..." line per
parameter). Two sources are provided: the modinfo command, and a reader
for the .modinfo section of the module's ELF file.
"""

import gzip
import io
import logging
import lzma
from typing import Callable, NamedTuple

import zstandard as zstd
from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from .errors import MetadataUnavailable
from .models import DESCRIPTION_NOT_FOUND, NO_OPTIONS, PARAMETER_SEPARATOR
from .system import CommandRunner

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = ':'


class ModuleMetadata(NamedTuple):
    description: str
    parameters: str


def _field_label(line: str) -> str:
    return line.split(FIELD_SEPARATOR, 1)[0].strip()


def _field_value(line: str) -> str:
    return line.split(FIELD_SEPARATOR, 1)[1].strip()


def extract_description(text: str) -> str:
    """Value of the first description line, or the "not found" sentinel."""
    for line in text.splitlines():
        if FIELD_SEPARATOR in line and _field_label(line) == 'description':
            return _field_value(line)
    return DESCRIPTION_NOT_FOUND


def extract_parameters(text: str) -> str:
    """
    Concatenate all parameter declarations in encounter order.

    Each value is followed by "; ", e.g. "debug:Debug level (int); ".
    Returns the "no options" sentinel when the module declares none.
    """
    options = ""
    for line in text.splitlines():
        if FIELD_SEPARATOR in line and _field_label(line) == 'parm':
            options += _field_value(line) + PARAMETER_SEPARATOR
    return options if options else NO_OPTIONS


def parse_modinfo(text: str) -> ModuleMetadata:
    return ModuleMetadata(extract_description(text), extract_parameters(text))


class ModinfoSource:
    """Module-info source backed by the modinfo command."""

    def __init__(self, runner: CommandRunner, command: str = 'modinfo'):
        self.runner = runner
        self.command = command

    def query(self, name: str) -> str:
        """
        Run modinfo for a module.

        Raises:
            MetadataUnavailable: If modinfo fails, times out, or is missing
        """
        result = self.runner.run([self.command, name])
        if result.timed_out:
            raise MetadataUnavailable(name, f"{self.command} timed out")
        if not result.ok:
            raise MetadataUnavailable(name, f"{self.command} exited with status {result.returncode}")
        return result.stdout


class ElfModinfoSource:
    """
    Module-info source that reads the .modinfo section of the module file.

    Works without modinfo installed and for module trees of kernels other
    than the running one. Compressed modules (.ko.zst, .ko.xz, .ko.gz) are
    decompressed in memory.
    """

    def __init__(self, locator: Callable[[str], str]):
        """
        Args:
            locator: Callable returning the module file path for a name ("" if unknown)
        """
        self.locator = locator

    def query(self, name: str) -> str:
        file_path = self.locator(name)
        if not file_path:
            raise MetadataUnavailable(name, "module file not known")
        try:
            entries = read_modinfo_section(file_path)
        except (OSError, ELFError, zstd.ZstdError, lzma.LZMAError) as e:
            raise MetadataUnavailable(name, f"cannot read {file_path}: {e}") from e
        return "\n".join(f"{key}:{' ' * max(1, 16 - len(key))}{value}"
                         for key, value in merge_parameter_types(entries))


def merge_parameter_types(entries: list) -> list:
    """
    Fold parmtype entries into their parm entries the way modinfo prints them.

    ("parm", "debug:Debug level") + ("parmtype", "debug:int") becomes
    ("parm", "debug:Debug level (int)"). A parameter with a type but no
    description is listed as ("parm", "debug:int").
    """
    types = {}
    described = set()
    for key, value in entries:
        param, _, kind = value.partition(':')
        if key == 'parmtype':
            types[param] = kind
        elif key == 'parm':
            described.add(param)

    merged = []
    for key, value in entries:
        param = value.partition(':')[0]
        if key == 'parm' and param in types:
            merged.append((key, f"{value} ({types[param]})"))
        elif key == 'parmtype':
            if param not in described:
                merged.append(('parm', value))
        else:
            merged.append((key, value))
    return merged


def read_module_file(file_path: str) -> bytes:
    """Read a module file, decompressing it according to its suffix."""
    if file_path.endswith('.zst'):
        with open(file_path, 'rb') as compressed_file:
            dctx = zstd.ZstdDecompressor()
            with dctx.stream_reader(compressed_file) as reader:
                return reader.read()
    if file_path.endswith('.xz'):
        with lzma.open(file_path, 'rb') as f:
            return f.read()
    if file_path.endswith('.gz'):
        with gzip.open(file_path, 'rb') as f:
            return f.read()
    with open(file_path, 'rb') as f:
        return f.read()


def read_modinfo_section(file_path: str) -> list:
    """
    Parse the NUL-separated key=value strings of a module's .modinfo section.

    Returns:
        list: (key, value) pairs in section order; empty if there is no section
    """
    elf = ELFFile(io.BytesIO(read_module_file(file_path)))
    modinfo_section = elf.get_section_by_name('.modinfo')
    if not modinfo_section:
        return []

    entries = []
    for entry in modinfo_section.data().split(b'\x00'):
        if b'=' not in entry:
            continue
        key, value = entry.split(b'=', 1)
        entries.append((key.decode('utf-8', errors='ignore'),
                        value.decode('utf-8', errors='ignore')))
    return entries


class MetadataProber:
    """Answers description and option queries for a named module."""

    def __init__(self, source):
        """
        Args:
            source: Object with a query(name) -> str method returning labeled
                modinfo-style text, raising MetadataUnavailable on failure
        """
        self.source = source

    def _query(self, name: str) -> str:
        try:
            return self.source.query(name)
        except MetadataUnavailable as e:
            logger.debug("%s", e)
            return ""

    def describe(self, name: str) -> str:
        return extract_description(self._query(name))

    def options(self, name: str) -> str:
        return extract_parameters(self._query(name))

    def probe(self, name: str) -> ModuleMetadata:
        """Description and options from a single module-info query."""
        return parse_modinfo(self._query(name))
