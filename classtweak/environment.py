"""
Symbol environments

A SymbolEnvironment answers "does this class / method / field exist?" for
the validator. ClassPathEnvironment builds one from compiled classes found
in directories and jar files, and keeps the type hierarchy as a directed
graph (subtype -> supertype) so inherited members can be resolved.

Usage:
    env = ClassPathEnvironment()
    env.add_path("build/classes")
    env.add_path("libs/dependency.jar")
    env.resolve_method("a/B", "run", "()V")
"""

from __future__ import annotations

import logging
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import networkx as nx

from classtweak.classfile.flags import ACC_INTERFACE
from classtweak.classfile.reader import read_class

logger = logging.getLogger(__name__)


@dataclass
class ClassSymbol:
    name: str
    access_flags: int
    super_name: Optional[str]
    interfaces: list[str] = field(default_factory=list)
    methods: dict[tuple[str, str], int] = field(default_factory=dict)
    fields: dict[tuple[str, str], int] = field(default_factory=dict)

    @property
    def is_interface(self) -> bool:
        return bool(self.access_flags & ACC_INTERFACE)


class SymbolEnvironment(ABC):
    """Symbol lookups a validator needs."""

    @abstractmethod
    def get_class(self, name: str) -> Optional[ClassSymbol]:
        ...

    def get_method(self, owner: str, name: str, descriptor: str) -> Optional[int]:
        """Access flags of a declared method, or None."""
        symbol = self.get_class(owner)
        return symbol.methods.get((name, descriptor)) if symbol else None

    def get_field(self, owner: str, name: str, descriptor: str) -> Optional[int]:
        symbol = self.get_class(owner)
        return symbol.fields.get((name, descriptor)) if symbol else None

    def supertypes(self, name: str) -> list[str]:
        """Every known ancestor of a class, nearest first."""
        symbol = self.get_class(name)
        if symbol is None:
            return []
        out: list[str] = []
        for parent in ([symbol.super_name] if symbol.super_name else []) + symbol.interfaces:
            for candidate in [parent] + self.supertypes(parent):
                if candidate not in out:
                    out.append(candidate)
        return out

    def resolve_method(self, owner: str, name: str, descriptor: str) -> Optional[str]:
        """Name of the class declaring the method, searching supertypes."""
        for candidate in [owner] + self.supertypes(owner):
            if self.get_method(candidate, name, descriptor) is not None:
                return candidate
        return None

    def resolve_field(self, owner: str, name: str, descriptor: str) -> Optional[str]:
        """Name of the class declaring the field, searching supertypes."""
        for candidate in [owner] + self.supertypes(owner):
            if self.get_field(candidate, name, descriptor) is not None:
                return candidate
        return None


class ClassPathEnvironment(SymbolEnvironment):
    """Index of compiled classes from bytes, directories and archives."""

    def __init__(self) -> None:
        self._classes: dict[str, ClassSymbol] = {}
        self._hierarchy = nx.DiGraph()

    def add_class(self, data: bytes) -> ClassSymbol:
        cf = read_class(data)
        symbol = ClassSymbol(
            cf.name, cf.access_flags, cf.super_name, list(cf.interfaces),
            {(m.name, m.descriptor): m.access_flags for m in cf.methods},
            {(f.name, f.descriptor): f.access_flags for f in cf.fields},
        )
        self._classes[cf.name] = symbol
        self._hierarchy.add_node(cf.name)
        for parent in ([cf.super_name] if cf.super_name else []) + cf.interfaces:
            self._hierarchy.add_edge(cf.name, parent)
        return symbol

    def add_path(self, path: Union[str, Path]) -> int:
        """Index a directory tree or a .jar/.zip. Returns classes added."""
        path = Path(path)
        count = 0
        if path.is_dir():
            for file in sorted(path.rglob("*.class")):
                self.add_class(file.read_bytes())
                count += 1
        elif zipfile.is_zipfile(path):
            with zipfile.ZipFile(path) as archive:
                for entry in archive.namelist():
                    if entry.endswith(".class") and not entry.startswith("META-INF/"):
                        self.add_class(archive.read(entry))
                        count += 1
        elif path.suffix == ".class":
            self.add_class(path.read_bytes())
            count = 1
        else:
            raise ValueError(f"Not a class directory, archive or class file: {path}")
        logger.debug("Indexed %d class(es) from %s", count, path)
        return count

    def get_class(self, name: str) -> Optional[ClassSymbol]:
        return self._classes.get(name)

    def supertypes(self, name: str) -> list[str]:
        """Every known ancestor of a class, nearest first."""
        if name not in self._hierarchy:
            return []
        return [n for n in nx.bfs_tree(self._hierarchy, name) if n != name]

    def __len__(self) -> int:
        return len(self._classes)
