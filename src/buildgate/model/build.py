"""Build, package, and file entities for one side of a comparison."""

from __future__ import annotations

import enum
import stat
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping
    from pathlib import Path

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Side(enum.Enum):
    """Which build of the comparison an entity belongs to."""

    BEFORE = "before"
    AFTER = "after"

    @property
    def opposite(self) -> Side:
        return Side.AFTER if self is Side.BEFORE else Side.BEFORE


class BuildType(enum.Enum):
    """Kinds of builds that can be compared."""

    RPM = "rpm"
    MODULE = "module"


class FileFlags(enum.Flag):
    """Archive-specific per-file attributes."""

    NONE = 0
    CONFIG = enum.auto()
    DOC = enum.auto()
    LICENSE = enum.auto()
    GHOST = enum.auto()
    NOREPLACE = enum.auto()
    MISSINGOK = enum.auto()
    ARTIFACT = enum.auto()

    @classmethod
    def parse(cls, names: Iterable[str]) -> FileFlags:
        """Combine flag names (case-insensitive) into a single value.

        Raises ``ValueError`` for unknown names.
        """
        flags = cls.NONE
        for name in names:
            try:
                flags |= cls[str(name).strip().upper()]
            except KeyError:
                valid = sorted(m.name.lower() for m in cls if m.name and m is not cls.NONE)
                msg = f"unknown file flag '{name}', must be one of {valid}"
                raise ValueError(msg) from None
        return flags


# ---------------------------------------------------------------------------
# Mode parsing
# ---------------------------------------------------------------------------

_TYPE_CHARS: dict[str, int] = {
    "-": stat.S_IFREG,
    "d": stat.S_IFDIR,
    "l": stat.S_IFLNK,
    "c": stat.S_IFCHR,
    "b": stat.S_IFBLK,
    "p": stat.S_IFIFO,
    "s": stat.S_IFSOCK,
}

# (position, char, bits) for the nine permission characters of `ls -l` output
_PERM_CHARS: tuple[tuple[int, str, int], ...] = (
    (1, "r", stat.S_IRUSR),
    (2, "w", stat.S_IWUSR),
    (4, "r", stat.S_IRGRP),
    (5, "w", stat.S_IWGRP),
    (7, "r", stat.S_IROTH),
    (8, "w", stat.S_IWOTH),
)

_EXEC_CHARS: tuple[tuple[int, int, int], ...] = (
    (3, stat.S_IXUSR, stat.S_ISUID),
    (6, stat.S_IXGRP, stat.S_ISGID),
    (9, stat.S_IXOTH, stat.S_ISVTX),
)


def parse_mode(value: object) -> int:
    """Parse a file mode given as an int, an octal string, or ``ls -l`` text.

    ``"0755"`` and ``"-rwsr-xr-x"`` are both accepted.  Octal strings without
    a file type bit default to a regular file.  Integers must be a full
    ``st_mode`` including the type bits; a bare YAML number such as ``755``
    is ambiguous (decimal, or YAML 1.1 octal for ``0755``) and is rejected.
    """
    if isinstance(value, bool):
        msg = f"invalid file mode {value!r}"
        raise ValueError(msg)
    if isinstance(value, int):
        if not stat.S_IFMT(value):
            msg = f"invalid file mode {value!r}: quote permission bits as an octal string, e.g. '0755'"
            raise ValueError(msg)
        return value

    text = str(value).strip()
    if len(text) == 10 and text[0] in _TYPE_CHARS:
        mode = _TYPE_CHARS[text[0]]
        for pos, char, bits in _PERM_CHARS:
            if text[pos] == char:
                mode |= bits
            elif text[pos] != "-":
                msg = f"invalid file mode '{text}'"
                raise ValueError(msg)
        for pos, exec_bit, special_bit in _EXEC_CHARS:
            char = text[pos]
            if char in "xst":
                mode |= exec_bit
            if char in "sStT":
                mode |= special_bit
            elif char not in "x-":
                msg = f"invalid file mode '{text}'"
                raise ValueError(msg)
        return mode

    try:
        mode = int(text, 8)
    except ValueError:
        msg = f"invalid file mode '{text}'"
        raise ValueError(msg) from None
    return mode if stat.S_IFMT(mode) else mode | stat.S_IFREG


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileMeta:
    """Filesystem metadata as recorded in the package payload."""

    mode: int = stat.S_IFREG | 0o644
    owner: str = "root"
    group: str = "root"
    size: int = 0
    mtime: int = 0
    link_target: str | None = None

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)

    @property
    def filemode(self) -> str:
        return stat.filemode(self.mode)

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_regular(self) -> bool:
        return stat.S_ISREG(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    @property
    def is_setuid(self) -> bool:
        return bool(self.mode & (stat.S_ISUID | stat.S_ISGID))


@dataclass(frozen=True)
class FileKey:
    """Position of a file inside a build: side, package index, list position."""

    side: Side
    package: int
    position: int


@dataclass(eq=False)
class File:
    """One payload entry of a package.

    ``peer`` refers to the corresponding file on the opposite side by key;
    it is set only by the peer model.
    """

    localpath: str
    idx: int
    meta: FileMeta = field(default_factory=FileMeta)
    fullpath: Path | None = None
    checksum: str | None = None
    mime_type: str | None = None
    caps: str | None = None
    flags: FileFlags = FileFlags.NONE
    key: FileKey | None = None
    peer: FileKey | None = None
    moved_path: bool = False
    moved_subpackage: bool = False

    @property
    def side(self) -> Side | None:
        return self.key.side if self.key is not None else None

    def __repr__(self) -> str:
        return f"File({self.localpath!r}, idx={self.idx}, key={self.key})"


@dataclass(eq=False)
class Package:
    """A built package on one side, with its payload in archive index order."""

    name: str
    version: str
    release: str
    arch: str
    files: list[File] = field(default_factory=list)
    epoch: int | None = None
    header_source: Mapping[str, Any] | Path | None = None
    side: Side | None = None
    index: int = -1

    @property
    def nevra(self) -> str:
        epoch = f"{self.epoch}:" if self.epoch else ""
        return f"{self.name}-{epoch}{self.version}-{self.release}.{self.arch}"

    @property
    def header_key(self) -> str:
        """Key identifying this package's header in the header cache."""
        side = self.side.value if self.side is not None else "unbound"
        return f"{side}:{self.nevra}"

    @property
    def is_empty(self) -> bool:
        return not self.files


@dataclass(eq=False)
class Build:
    """One side of the comparison: an ordered collection of packages."""

    side: Side
    name: str
    version: str
    release: str
    packages: list[Package] = field(default_factory=list)
    build_type: BuildType = BuildType.RPM

    def __post_init__(self) -> None:
        for pkg_index, package in enumerate(self.packages):
            package.side = self.side
            package.index = pkg_index
            package.files.sort(key=lambda f: f.idx)
            for position, file in enumerate(package.files):
                file.key = FileKey(self.side, pkg_index, position)

    @property
    def nvr(self) -> str:
        return f"{self.name}-{self.version}-{self.release}"

    def file(self, key: FileKey) -> File:
        """Resolve a key produced for this build."""
        if key.side is not self.side:
            msg = f"key {key} does not belong to the {self.side.value} build"
            raise ValueError(msg)
        return self.packages[key.package].files[key.position]

    def package_of(self, file: File) -> Package:
        if file.key is None or file.key.side is not self.side:
            msg = f"{file!r} does not belong to the {self.side.value} build"
            raise ValueError(msg)
        return self.packages[file.key.package]

    def iter_files(self) -> Iterator[tuple[Package, File]]:
        """Yield (package, file) in package order, then archive order."""
        for package in self.packages:
            for file in package.files:
                yield package, file
