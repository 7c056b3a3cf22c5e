"""Shared fixtures for News Clipper tests."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from newsclipper.config import ClipperConfig, HandlerKind
from newsclipper.errors import RegistryUnavailableError
from newsclipper.models import RemoteVersionInfo, UpdateKind, VersionStatus


def make_handler_code(
    class_name: str = "Example",
    kind: str = "Acquisition",
    version: Optional[str] = "1.02",
    protocol: Optional[str] = "1.18",
    body: str = "    def get(self, attributes):\n        return 'hello'\n",
    extra: str = "",
) -> str:
    lines = ["from newsclipper.handler import Handler", extra, "", f'HANDLER_KIND = "{kind}"']
    if version is not None:
        lines.append(f'VERSION = "{version}"')
    if protocol is not None:
        lines.append(f'PROTOCOL_VERSION = "{protocol}"')
    lines += ["", "", f"class {class_name}(Handler):", body]
    return "\n".join(lines)


class StubRegistry:
    """Registry double that counts calls and serves canned answers."""

    def __init__(self):
        self.types: Dict[str, HandlerKind] = {}
        self.versions: Dict[Tuple[str, bool], RemoteVersionInfo] = {}
        self.code: Dict[str, str] = {}
        self.unavailable = False
        self.calls: List[Tuple] = []

    def add(self, name: str, kind: HandlerKind, version: str, code: str,
            update_kind: UpdateKind = UpdateKind.FUNCTIONAL, bugfix_only: Optional[bool] = None):
        self.types[name] = kind
        info = RemoteVersionInfo(status=VersionStatus.OKAY, version=version, update_kind=update_kind)
        for flag in ((False, True) if bugfix_only is None else (bugfix_only,)):
            self.versions[(name, flag)] = info
        self.code[name] = code

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def query_type(self, name):
        self.calls.append(("query_type", name))
        if self.unavailable:
            raise RegistryUnavailableError("down")
        return self.types[name]

    def query_latest_version(self, name, protocol_version, want_bugfix_only, local_version):
        self.calls.append(("query_latest_version", name, want_bugfix_only))
        if self.unavailable:
            raise RegistryUnavailableError("down")
        if name not in self.types:
            return RemoteVersionInfo.not_found()
        return self.versions.get((name, want_bugfix_only), RemoteVersionInfo.no_update())

    def fetch_code(self, name, version):
        self.calls.append(("fetch_code", name, version))
        if self.unavailable:
            raise RegistryUnavailableError("down")
        return self.code.get(name)


@pytest.fixture
def handler_code():
    """Builder for handler source text."""
    return make_handler_code


@pytest.fixture
def install_handler():
    """Write handler source into <root>/<kind>/<name>.py."""
    def _install(root: Path, name: str, code: str, kind: str = "Acquisition") -> Path:
        path = root / kind / f"{name}.py"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(code)
        return path
    return _install


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory."""
    return ClipperConfig(
        handler_locations=[tmp_path / "handlers"],
        cache_dir=tmp_path / "cache",
        state_file=tmp_path / "state.json",
        registry_url="http://registry.test/cgi-bin",
        socket_tries=2,
        socket_timeout=1,
        interactive=False,
        auto_download_bugfix_updates=False,
    )


@pytest.fixture
def stub_registry():
    return StubRegistry()
