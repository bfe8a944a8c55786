"""Registry support: .reg parsing and registry component generation."""

from .processor import (
    DEFAULT_SDDL,
    RegistryComponent,
    RegistryKey,
    RegistryProcessor,
    RegistryValue,
)
from .reg_file import parse_reg_file, parse_reg_text

__all__ = [
    "DEFAULT_SDDL",
    "RegistryComponent",
    "RegistryKey",
    "RegistryProcessor",
    "RegistryValue",
    "parse_reg_file",
    "parse_reg_text",
]
