"""Model domain: builds, packages, files, headers, and the peer model."""

from buildgate.model.build import (
    Build,
    BuildType,
    File,
    FileFlags,
    FileKey,
    FileMeta,
    Package,
    Side,
    parse_mode,
)
from buildgate.model.header import Header, HeaderCache, HeaderError
from buildgate.model.loader import (
    BuildLoadError,
    file_checksum,
    header_loader,
    load_build,
    parse_build,
    read_header,
)
from buildgate.model.peers import (
    Peer,
    PeerModel,
    build_peer_model,
    pair_packages,
    path_distance,
)

__all__ = [
    "Build",
    "BuildLoadError",
    "BuildType",
    "File",
    "FileFlags",
    "FileKey",
    "FileMeta",
    "Header",
    "HeaderCache",
    "HeaderError",
    "Package",
    "Peer",
    "PeerModel",
    "Side",
    "build_peer_model",
    "file_checksum",
    "header_loader",
    "load_build",
    "pair_packages",
    "parse_build",
    "parse_mode",
    "path_distance",
    "read_header",
]
