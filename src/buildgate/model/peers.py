"""Peer model: pair before/after packages and files, detect moved files."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from buildgate.model.build import Build, File, FileKey, Package

logger = logging.getLogger(__name__)

NOARCH = "noarch"


@dataclass(frozen=True)
class Peer:
    """A before/after package pair; either side may be missing."""

    before: Package | None
    after: Package | None

    @property
    def name(self) -> str:
        pkg = self.after if self.after is not None else self.before
        assert pkg is not None
        return pkg.name

    @property
    def arch(self) -> str:
        pkg = self.after if self.after is not None else self.before
        assert pkg is not None
        return pkg.arch


class PeerModel:
    """Pairing of two builds, read-only once constructed.

    Use :func:`build_peer_model` to create one.
    """

    def __init__(self, before: Build | None, after: Build, peers: list[Peer]) -> None:
        self.before = before
        self.after = after
        self.peers: tuple[Peer, ...] = tuple(peers)

    def resolve(self, key: FileKey) -> File:
        """Return the file a key refers to, on whichever side it names."""
        build = self.after if key.side is self.after.side else self.before
        if build is None:
            msg = f"no build for {key}"
            raise ValueError(msg)
        return build.file(key)

    def peer_of(self, file: File) -> File | None:
        return self.resolve(file.peer) if file.peer is not None else None

    def package_of(self, file: File) -> Package:
        return self._build_for(file).package_of(file)

    def _build_for(self, file: File) -> Build:
        assert file.key is not None
        build = self.after if file.key.side is self.after.side else self.before
        assert build is not None
        return build

    def added_files(self) -> Iterator[tuple[Package, File]]:
        """After-only files (no counterpart in the before build)."""
        for package, file in self.after.iter_files():
            if file.peer is None:
                yield package, file

    def removed_files(self) -> Iterator[tuple[Package, File]]:
        """Before-only files (no counterpart in the after build)."""
        if self.before is None:
            return
        for package, file in self.before.iter_files():
            if file.peer is None:
                yield package, file

    def paired_files(self) -> Iterator[tuple[Package, File, File]]:
        """Yield (after package, after file, before file) for every pair."""
        for package, file in self.after.iter_files():
            if file.peer is not None:
                yield package, file, self.resolve(file.peer)


# ---------------------------------------------------------------------------
# Package pairing
# ---------------------------------------------------------------------------


def pair_packages(before: Build | None, after: Build) -> list[Peer]:
    """Pair packages by (name, arch), falling back to name when one is noarch.

    Order: after packages in build order, then before-only packages.
    """
    if before is None:
        return [Peer(before=None, after=pkg) for pkg in after.packages]

    remaining: dict[tuple[str, str], Package] = {
        (pkg.name, pkg.arch): pkg for pkg in before.packages
    }
    peers: list[Peer] = []
    unmatched: list[Package] = []

    for pkg in after.packages:
        match = remaining.pop((pkg.name, pkg.arch), None)
        if match is None:
            unmatched.append(pkg)
            peers.append(Peer(before=None, after=pkg))
        else:
            peers.append(Peer(before=match, after=pkg))

    # noarch fallback, for packages that switched between noarch and an arch
    for pkg in unmatched:
        for key, candidate in list(remaining.items()):
            if candidate.name == pkg.name and NOARCH in (candidate.arch, pkg.arch):
                del remaining[key]
                pos = next(i for i, p in enumerate(peers) if p.after is pkg)
                peers[pos] = Peer(before=candidate, after=pkg)
                break

    before_only = sorted(remaining.values(), key=lambda p: p.index)
    peers.extend(Peer(before=pkg, after=None) for pkg in before_only)
    return peers


# ---------------------------------------------------------------------------
# File pairing
# ---------------------------------------------------------------------------


def _link(after_file: File, before_file: File, *, moved_path: bool, moved_subpackage: bool) -> None:
    after_file.peer = before_file.key
    before_file.peer = after_file.key
    for f in (after_file, before_file):
        f.moved_path = moved_path
        f.moved_subpackage = moved_subpackage


def path_distance(a: str, b: str) -> int:
    """Edit distance between two paths, counted in path components."""
    left = [part for part in a.split("/") if part]
    right = [part for part in b.split("/") if part]
    previous = list(range(len(right) + 1))
    for i, lpart in enumerate(left, start=1):
        current = [i]
        for j, rpart in enumerate(right, start=1):
            cost = 0 if lpart == rpart else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _pair_exact(peer: Peer) -> int:
    """Pair files of one package pair by archive path.  Returns pair count."""
    assert peer.before is not None and peer.after is not None
    by_path: dict[str, File] = {}
    for file in peer.before.files:
        by_path.setdefault(file.localpath, file)

    rebased = peer.before.version != peer.after.version
    paired = 0
    for file in peer.after.files:
        match = by_path.get(file.localpath)
        if (match is None or match.peer is not None) and rebased:
            # versioned directories such as /usr/share/doc/foo-1.2
            candidate = file.localpath.replace(peer.after.version, peer.before.version)
            match = by_path.get(candidate)
        if match is None or match.peer is not None:
            continue
        _link(file, match, moved_path=False, moved_subpackage=False)
        paired += 1
    return paired


def _movable(file: File) -> bool:
    return bool(file.checksum) and not file.meta.is_dir


def _pair_moves(before: Build, after: Build) -> int:
    """Match unpaired after-files to unpaired before-files by checksum.

    Candidates come from the whole before build.  Ties are broken by: same
    package name first, then smallest path distance, then first-encountered
    order (package order, archive order).
    """
    buckets: dict[str, list[tuple[Package, File]]] = defaultdict(list)
    for package, file in before.iter_files():
        if file.peer is None and _movable(file):
            assert file.checksum is not None
            buckets[file.checksum].append((package, file))

    moved = 0
    for package, file in after.iter_files():
        if file.peer is not None or not _movable(file):
            continue
        assert file.checksum is not None
        candidates = buckets.get(file.checksum)
        if not candidates:
            continue

        best = min(
            range(len(candidates)),
            key=lambda i: (
                candidates[i][0].name != package.name,
                path_distance(candidates[i][1].localpath, file.localpath),
                i,
            ),
        )
        before_pkg, before_file = candidates.pop(best)
        _link(
            file,
            before_file,
            moved_path=before_file.localpath != file.localpath,
            moved_subpackage=before_pkg.name != package.name,
        )
        moved += 1
        logger.debug(
            "Matched %s:%s to %s:%s by checksum",
            before_pkg.name,
            before_file.localpath,
            package.name,
            file.localpath,
        )
    return moved


def _reset(build: Build) -> None:
    for _package, file in build.iter_files():
        file.peer = None
        file.moved_path = False
        file.moved_subpackage = False


def build_peer_model(
    before: Build | None,
    after: Build,
    *,
    move_detection: bool = True,
) -> PeerModel:
    """Pair the two builds and link corresponding files in both directions.

    Unpaired files are a valid outcome: they are the added (after-only) and
    removed (before-only) files.
    """
    _reset(after)
    if before is not None:
        _reset(before)

    peers = pair_packages(before, after)
    exact = 0
    for peer in peers:
        if peer.before is not None and peer.after is not None:
            exact += _pair_exact(peer)

    moved = 0
    if move_detection and before is not None:
        moved = _pair_moves(before, after)

    logger.info(
        "Paired %d packages: %d files by path, %d by checksum",
        len(peers),
        exact,
        moved,
    )
    return PeerModel(before, after, peers)
