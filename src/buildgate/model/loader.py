"""Load build manifests (already-extracted builds) and package headers."""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from buildgate.model.build import Build, BuildType, File, FileFlags, FileMeta, Package, Side, parse_mode
from buildgate.model.header import Header, HeaderError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1 << 16


class BuildLoadError(Exception):
    """Raised when a build manifest is missing or malformed."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def file_checksum(path: Path) -> str:
    """Return the hex SHA-256 digest of a file's content."""
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _require_str(data: dict[str, object], key: str, context: str, default: object = None) -> str:
    value = data.get(key, default)
    if value is None or not str(value).strip():
        msg = f"{context}: missing required '{key}' field"
        raise ValueError(msg)
    return str(value)


def _parse_file(data: object, position: int, root: Path | None, context: str) -> File:
    if not isinstance(data, dict):
        msg = f"{context}: file at index {position} must be a mapping"
        raise ValueError(msg)

    path = _require_str(data, "path", f"{context} file {position}")
    if not path.startswith("/"):
        msg = f"{context}: file path '{path}' must be absolute"
        raise ValueError(msg)

    mode = parse_mode(data.get("mode", "0644"))
    meta = FileMeta(
        mode=mode,
        owner=str(data.get("owner", "root")),
        group=str(data.get("group", "root")),
        size=int(data.get("size", 0)),  # type: ignore[call-overload]
        mtime=int(data.get("mtime", 0)),  # type: ignore[call-overload]
        link_target=str(data["link"]) if data.get("link") is not None else None,
    )

    flags_raw = data.get("flags", [])
    if isinstance(flags_raw, str):
        flags_raw = [flags_raw]
    if not isinstance(flags_raw, list):
        msg = f"{context}: flags for '{path}' must be a list"
        raise ValueError(msg)

    # Special files (devices, fifos) are never extracted.
    fullpath: Path | None = None
    if root is not None and (meta.is_regular or meta.is_dir or meta.is_symlink):
        candidate = root / path.lstrip("/")
        if candidate.exists() or candidate.is_symlink():
            fullpath = candidate

    checksum = data.get("checksum")
    if checksum is None and fullpath is not None and meta.is_regular and fullpath.is_file():
        checksum = file_checksum(fullpath)

    mime_type = data.get("mime")
    if mime_type is None and meta.is_regular:
        mime_type = mimetypes.guess_type(path)[0]

    return File(
        localpath=path,
        idx=int(data.get("idx", position)),  # type: ignore[call-overload]
        meta=meta,
        fullpath=fullpath,
        checksum=str(checksum) if checksum else None,
        mime_type=str(mime_type) if mime_type else None,
        caps=str(data["caps"]) if data.get("caps") else None,
        flags=FileFlags.parse(str(f) for f in flags_raw),
    )


def _parse_package(
    data: object, index: int, build_data: dict[str, object], base_dir: Path
) -> Package:
    if not isinstance(data, dict):
        msg = f"package at index {index} must be a mapping"
        raise ValueError(msg)

    name = _require_str(data, "name", f"package at index {index}")
    context = f"package '{name}'"
    version = _require_str(data, "version", context, default=build_data.get("version"))
    release = _require_str(data, "release", context, default=build_data.get("release"))
    arch = _require_str(data, "arch", context)

    root: Path | None = None
    if data.get("root") is not None:
        root = (base_dir / str(data["root"])).resolve()
        if not root.is_dir():
            msg = f"{context}: extracted root '{root}' is not a directory"
            raise ValueError(msg)

    header_source: dict[str, Any] | Path | None = None
    if "header" in data and "header_file" in data:
        msg = f"{context}: use either 'header' or 'header_file', not both"
        raise ValueError(msg)
    if "header" in data:
        if not isinstance(data["header"], dict):
            msg = f"{context}: 'header' must be a mapping"
            raise ValueError(msg)
        header_source = dict(data["header"])
    elif "header_file" in data:
        header_source = base_dir / str(data["header_file"])

    files_raw = data.get("files", [])
    if not isinstance(files_raw, list):
        msg = f"{context}: 'files' must be a list"
        raise ValueError(msg)

    epoch_raw = data.get("epoch")
    return Package(
        name=name,
        version=version,
        release=release,
        arch=arch,
        epoch=int(epoch_raw) if epoch_raw is not None else None,  # type: ignore[call-overload]
        files=[_parse_file(f, i, root, context) for i, f in enumerate(files_raw)],
        header_source=header_source,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_build(data: object, side: Side, *, base_dir: Path) -> Build:
    """Build a :class:`Build` from a parsed manifest mapping.

    Raises ``ValueError`` on schema errors.
    """
    if not isinstance(data, dict):
        msg = "build manifest must be a YAML mapping"
        raise ValueError(msg)

    name = _require_str(data, "name", "build manifest")
    version = _require_str(data, "version", "build manifest")
    release = _require_str(data, "release", "build manifest")

    type_raw = str(data.get("type", BuildType.RPM.value))
    try:
        build_type = BuildType(type_raw)
    except ValueError:
        msg = (
            f"build manifest: invalid type '{type_raw}', "
            f"must be one of {sorted(t.value for t in BuildType)}"
        )
        raise ValueError(msg) from None

    packages_raw = data.get("packages", [])
    if not isinstance(packages_raw, list):
        msg = "build manifest: 'packages' must be a list"
        raise ValueError(msg)

    packages = [_parse_package(p, i, data, base_dir) for i, p in enumerate(packages_raw)]
    return Build(
        side=side,
        name=name,
        version=version,
        release=release,
        packages=packages,
        build_type=build_type,
    )


def load_build(manifest_path: Path, side: Side) -> Build:
    """Load one side of the comparison from a YAML build manifest.

    Relative ``root`` and ``header_file`` entries are resolved against the
    manifest's directory.

    Raises
    ------
    BuildLoadError
        When the manifest cannot be read or fails validation.
    """
    try:
        with manifest_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Cannot read build manifest {manifest_path}: {exc}"
        raise BuildLoadError(msg) from exc

    try:
        build = parse_build(data, side, base_dir=manifest_path.parent)
    except (ValueError, TypeError, OSError) as exc:
        msg = f"Invalid build manifest {manifest_path}: {exc}"
        raise BuildLoadError(msg) from exc

    logger.info(
        "Loaded %s build %s: %d packages, %d files",
        side.value,
        build.nvr,
        len(build.packages),
        sum(len(p.files) for p in build.packages),
    )
    return build


def read_header(package: Package) -> Header:
    """Parse a package's header from its source.

    Packages without a header source get a header carrying only their
    identity fields.
    """
    defaults: dict[str, Any] = {
        "name": package.name,
        "version": package.version,
        "release": package.release,
        "arch": package.arch,
        "epoch": package.epoch,
    }
    source = package.header_source
    if source is None:
        return Header.from_mapping({}, defaults=defaults)
    if isinstance(source, Path):
        try:
            with source.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            msg = f"cannot read header {source}: {exc}"
            raise HeaderError(msg) from exc
        return Header.from_mapping(data, defaults=defaults)
    return Header.from_mapping(source, defaults=defaults)


def header_loader(*builds: Build | None) -> Callable[[str], Header]:
    """Return a loader resolving header keys to parsed headers for *builds*."""
    packages: dict[str, Package] = {}
    for build in builds:
        if build is None:
            continue
        for package in build.packages:
            packages[package.header_key] = package

    def _load(key: str) -> Header:
        package = packages.get(key)
        if package is None:
            msg = f"no package for header key '{key}'"
            raise HeaderError(msg)
        return read_header(package)

    return _load
