"""Tests for buildgate.model.peers: package pairing, file pairing, move detection."""

from __future__ import annotations

import stat

from helpers import make_build, make_file, make_package

from buildgate.model.build import Build, Side
from buildgate.model.peers import build_peer_model, pair_packages, path_distance


def _all_files(build: Build) -> list:
    return [f for _pkg, f in build.iter_files()]


# ---------------------------------------------------------------------------
# Package pairing
# ---------------------------------------------------------------------------


class TestPairPackages:
    def test_pairs_by_name_and_arch(self) -> None:
        before = make_build(
            Side.BEFORE,
            [make_package("demo", arch="x86_64"), make_package("demo", arch="aarch64")],
        )
        after = make_build(
            Side.AFTER,
            [make_package("demo", arch="aarch64"), make_package("demo", arch="x86_64")],
        )
        peers = pair_packages(before, after)
        assert len(peers) == 2
        for peer in peers:
            assert peer.before is not None and peer.after is not None
            assert peer.before.arch == peer.after.arch

    def test_noarch_fallback(self) -> None:
        before = make_build(Side.BEFORE, [make_package("demo-data", arch="noarch")])
        after = make_build(Side.AFTER, [make_package("demo-data", arch="x86_64")])
        [peer] = pair_packages(before, after)
        assert peer.before is before.packages[0]
        assert peer.after is after.packages[0]

    def test_unmatched_packages_on_either_side(self) -> None:
        before = make_build(Side.BEFORE, [make_package("old"), make_package("common")])
        after = make_build(Side.AFTER, [make_package("common"), make_package("new")])
        peers = pair_packages(before, after)
        assert [(p.before is not None, p.after is not None, p.name) for p in peers] == [
            (True, True, "common"),
            (False, True, "new"),
            (True, False, "old"),
        ]

    def test_no_before_build(self) -> None:
        after = make_build(Side.AFTER, [make_package("demo")])
        [peer] = pair_packages(None, after)
        assert peer.before is None
        assert peer.after is after.packages[0]


# ---------------------------------------------------------------------------
# File pairing
# ---------------------------------------------------------------------------


class TestFilePairing:
    def test_exact_path_pairing_is_symmetric(self) -> None:
        before = make_build(Side.BEFORE, [make_package("demo", [make_file("/usr/bin/demo")])])
        after = make_build(Side.AFTER, [make_package("demo", [make_file("/usr/bin/demo")])])
        model = build_peer_model(before, after)

        after_file = after.packages[0].files[0]
        before_file = before.packages[0].files[0]
        assert model.peer_of(after_file) is before_file
        assert model.peer_of(before_file) is after_file
        assert not after_file.moved_path
        assert not after_file.moved_subpackage

    def test_every_peer_reference_is_symmetric(self) -> None:
        before = make_build(
            Side.BEFORE,
            [
                make_package("a", [make_file("/a/1"), make_file("/a/2", checksum="x")]),
                make_package("b", [make_file("/b/1"), make_file("/b/gone")]),
            ],
        )
        after = make_build(
            Side.AFTER,
            [
                make_package("a", [make_file("/a/1"), make_file("/a/new")]),
                make_package("b", [make_file("/b/1"), make_file("/b/2", checksum="x")]),
            ],
        )
        model = build_peer_model(before, after)
        for file in _all_files(after) + _all_files(before):
            peer = model.peer_of(file)
            if peer is not None:
                assert model.peer_of(peer) is file
                assert peer.side is not file.side

    def test_version_substitution_pairs_rebased_paths(self) -> None:
        before = make_build(
            Side.BEFORE,
            [make_package("demo", [make_file("/usr/share/doc/demo-1.0/NEWS", checksum="old")])],
        )
        after = make_build(
            Side.AFTER,
            [
                make_package(
                    "demo",
                    [make_file("/usr/share/doc/demo-1.1/NEWS", checksum="new")],
                    version="1.1",
                )
            ],
            version="1.1",
        )
        model = build_peer_model(before, after)
        after_file = after.packages[0].files[0]
        assert model.peer_of(after_file) is before.packages[0].files[0]
        assert not after_file.moved_path

    def test_rebuilding_the_model_resets_links(self) -> None:
        before = make_build(Side.BEFORE, [make_package("demo", [make_file("/old", checksum="c")])])
        after = make_build(Side.AFTER, [make_package("demo", [make_file("/new", checksum="c")])])
        build_peer_model(before, after, move_detection=True)
        model = build_peer_model(before, after, move_detection=False)
        assert list(model.paired_files()) == []


# ---------------------------------------------------------------------------
# Move detection
# ---------------------------------------------------------------------------


class TestMoveDetection:
    def _renamed(self) -> tuple[Build, Build]:
        before = make_build(
            Side.BEFORE, [make_package("demo", [make_file("/usr/bin/foo", checksum="abc")])]
        )
        after = make_build(
            Side.AFTER, [make_package("demo", [make_file("/usr/bin/bar", checksum="abc")])]
        )
        return before, after

    def test_rename_detected_with_move_detection(self) -> None:
        before, after = self._renamed()
        model = build_peer_model(before, after, move_detection=True)

        bar = after.packages[0].files[0]
        assert model.peer_of(bar) is before.packages[0].files[0]
        assert bar.moved_path
        assert not bar.moved_subpackage
        assert list(model.added_files()) == []
        assert list(model.removed_files()) == []

    def test_rename_is_add_and_remove_without_move_detection(self) -> None:
        before, after = self._renamed()
        model = build_peer_model(before, after, move_detection=False)

        assert [f.localpath for _p, f in model.removed_files()] == ["/usr/bin/foo"]
        assert [f.localpath for _p, f in model.added_files()] == ["/usr/bin/bar"]
        assert not after.packages[0].files[0].moved_path

    def test_move_across_directories(self) -> None:
        before = make_build(
            Side.BEFORE, [make_package("demo", [make_file("/usr/bin/foo", checksum="abc")])]
        )
        after = make_build(
            Side.AFTER, [make_package("demo", [make_file("/usr/local/bin/foo", checksum="abc")])]
        )

        model = build_peer_model(before, after, move_detection=True)
        moved = after.packages[0].files[0]
        assert model.peer_of(moved) is before.packages[0].files[0]
        assert model.peer_of(before.packages[0].files[0]) is moved
        assert moved.moved_path
        assert not moved.moved_subpackage

        model = build_peer_model(before, after, move_detection=False)
        assert [f.localpath for _p, f in model.removed_files()] == ["/usr/bin/foo"]
        assert [f.localpath for _p, f in model.added_files()] == ["/usr/local/bin/foo"]
        assert not moved.moved_path

    def test_move_between_subpackages(self) -> None:
        before = make_build(
            Side.BEFORE,
            [
                make_package("demo", [make_file("/usr/lib/demo/plugin.so", checksum="p")]),
                make_package("demo-plugins", []),
            ],
        )
        after = make_build(
            Side.AFTER,
            [
                make_package("demo", []),
                make_package("demo-plugins", [make_file("/usr/lib/demo/plugin.so", checksum="p")]),
            ],
        )
        model = build_peer_model(before, after)
        moved = after.packages[1].files[0]
        assert model.peer_of(moved) is before.packages[0].files[0]
        assert moved.moved_subpackage
        assert not moved.moved_path
        assert model.package_of(model.peer_of(moved)).name == "demo"

    def test_directories_and_missing_checksums_never_move(self) -> None:
        before = make_build(
            Side.BEFORE,
            [
                make_package(
                    "demo",
                    [
                        make_file("/opt/a", mode=stat.S_IFDIR | 0o755, checksum="d"),
                        make_file("/opt/x", checksum=""),
                    ],
                )
            ],
        )
        after = make_build(
            Side.AFTER,
            [
                make_package(
                    "demo",
                    [
                        make_file("/opt/b", mode=stat.S_IFDIR | 0o755, checksum="d"),
                        make_file("/opt/y", checksum=""),
                    ],
                )
            ],
        )
        model = build_peer_model(before, after)
        assert list(model.paired_files()) == []

    def test_tie_break_prefers_same_package(self) -> None:
        before = make_build(
            Side.BEFORE,
            [
                make_package("other", [make_file("/usr/share/x/data", checksum="same")]),
                make_package("demo", [make_file("/srv/far/away/data", checksum="same")]),
            ],
        )
        after = make_build(
            Side.AFTER,
            [make_package("demo", [make_file("/usr/share/y/data", checksum="same")])],
        )
        model = build_peer_model(before, after)
        target = model.peer_of(after.packages[0].files[0])
        assert target is before.packages[1].files[0]

    def test_tie_break_prefers_smallest_path_distance(self) -> None:
        before = make_build(
            Side.BEFORE,
            [
                make_package(
                    "demo",
                    [
                        make_file("/a/b/c/d/file", checksum="same"),
                        make_file("/usr/share/demo/file", checksum="same"),
                    ],
                )
            ],
        )
        after = make_build(
            Side.AFTER,
            [make_package("demo", [make_file("/usr/share/demo2/file", checksum="same")])],
        )
        model = build_peer_model(before, after)
        assert model.peer_of(after.packages[0].files[0]) is before.packages[0].files[1]

    def test_tie_break_falls_back_to_first_encountered(self) -> None:
        before = make_build(
            Side.BEFORE,
            [
                make_package(
                    "demo",
                    [make_file("/data/one", checksum="same"), make_file("/data/two", checksum="same")],
                )
            ],
        )
        after = make_build(
            Side.AFTER, [make_package("demo", [make_file("/data/three", checksum="same")])]
        )
        model = build_peer_model(before, after)
        assert model.peer_of(after.packages[0].files[0]) is before.packages[0].files[0]

    def test_pairing_is_deterministic(self) -> None:
        def run() -> list[tuple[str, str]]:
            before = make_build(
                Side.BEFORE,
                [
                    make_package("a", [make_file(f"/a/{i}", checksum="c") for i in range(5)]),
                    make_package("b", [make_file(f"/b/{i}", checksum="c") for i in range(5)]),
                ],
            )
            after = make_build(
                Side.AFTER,
                [make_package("b", [make_file(f"/moved/{i}", checksum="c") for i in range(7)])],
            )
            model = build_peer_model(before, after)
            return [(a.localpath, b.localpath) for _p, a, b in model.paired_files()]

        first = run()
        assert first == run()
        assert len(first) == 7
        assert [b for _a, b in first[:5]] == [f"/b/{i}" for i in range(5)]


class TestPathDistance:
    def test_identical(self) -> None:
        assert path_distance("/usr/bin/foo", "/usr/bin/foo") == 0

    def test_counts_components(self) -> None:
        assert path_distance("/usr/bin/foo", "/usr/sbin/foo") == 1
        assert path_distance("/usr/bin/foo", "/foo") == 2
