"""Shared state handed to inspections during a run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildgate.model.header import HeaderCache, HeaderError
from buildgate.model.loader import header_loader
from buildgate.model.peers import PeerModel, build_peer_model
from buildgate.results.ledger import ResultParams, Results, Severity, Verb, WaiverAuth

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from buildgate.config import RunConfig
    from buildgate.model.build import Build, File, Package
    from buildgate.model.header import Header
    from buildgate.policy.rules import PolicyStore

logger = logging.getLogger(__name__)


class BuildContext:
    """The peer model and header cache for one comparison.

    Construct with :meth:`open`; release with :meth:`close` (or use it as a
    context manager).
    """

    def __init__(self, peers: PeerModel, headers: HeaderCache) -> None:
        self.peers: PeerModel | None = peers
        self.headers = headers

    @classmethod
    def open(
        cls,
        before: Build | None,
        after: Build,
        *,
        move_detection: bool = True,
        loader: Callable[[str], Header] | None = None,
    ) -> BuildContext:
        peers = build_peer_model(before, after, move_detection=move_detection)
        headers = HeaderCache(loader if loader is not None else header_loader(before, after))
        return cls(peers, headers)

    @property
    def model(self) -> PeerModel:
        if self.peers is None:
            msg = "build context is closed"
            raise RuntimeError(msg)
        return self.peers

    @property
    def before(self) -> Build | None:
        return self.model.before

    @property
    def after(self) -> Build:
        return self.model.after

    def close(self) -> None:
        """Release the header cache and the peer model."""
        self.headers.clear()
        self.peers = None

    def __enter__(self) -> BuildContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class InspectionContext:
    """What one inspection sees: builds, policy, headers, and its result sink."""

    name: str
    origin: int
    build: BuildContext
    policy: PolicyStore
    config: RunConfig
    results: Results
    _bad_headers: set[str] = field(default_factory=set)

    @property
    def peers(self) -> PeerModel:
        return self.build.model

    @property
    def before(self) -> Build | None:
        return self.build.before

    @property
    def after(self) -> Build:
        return self.build.after

    # -- results ------------------------------------------------------------

    def add_result(
        self,
        severity: Severity,
        msg: str | None = None,
        *,
        waiverauth: WaiverAuth = WaiverAuth.NOT_WAIVABLE,
        details: str | None = None,
        remedy: str | None = None,
        verb: Verb = Verb.NIL,
        noun: str | None = None,
        arch: str | None = None,
        file: str | None = None,
    ) -> None:
        params = ResultParams(
            severity=severity,
            waiverauth=waiverauth,
            header=self.name,
            msg=msg,
            details=details,
            remedy=remedy,
            verb=verb,
            noun=noun,
            arch=arch,
            file=file,
        )
        self.results.add(params, origin=self.origin)

    def add_ok(self) -> None:
        """Record that the inspection ran and found nothing."""
        self.add_result(Severity.OK)

    # -- lookups ------------------------------------------------------------

    def is_ignored(self, path: str) -> bool:
        return self.policy.is_ignored(self.name, path)

    def after_files(self) -> Iterator[tuple[Package, File]]:
        """After-build files this inspection does not ignore."""
        for package, file in self.after.iter_files():
            if not self.is_ignored(file.localpath):
                yield package, file

    def peer_of(self, file: File) -> File | None:
        return self.peers.peer_of(file)

    def header(self, package: Package) -> Header | None:
        """Return the package header, or None after recording a BAD result."""
        try:
            return self.build.headers.get(package.header_key)
        except HeaderError as exc:
            if package.header_key not in self._bad_headers:
                self._bad_headers.add(package.header_key)
                logger.warning("Unreadable header for %s: %s", package.nevra, exc)
                self.add_result(
                    Severity.BAD,
                    f"Unable to read the package header for {package.nevra}",
                    details=str(exc),
                    remedy="Rebuild the package or repair the extracted header metadata.",
                    verb=Verb.FAILED,
                    noun=package.nevra,
                    arch=package.arch,
                )
            return None

    def security_severity(
        self, rule_type: str, package: Package, default: Severity = Severity.BAD
    ) -> Severity:
        """Severity for a security finding, from the package's matching rule set."""
        action = self.policy.security_action(
            rule_type, package.name, package.version, package.release
        )
        return action.severity if action is not None else default
