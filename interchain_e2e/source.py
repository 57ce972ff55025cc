"""
Installation sources for the chain CLI & contract artifacts.
Local overrides or release archives fetched over HTTP.
"""
import platform
import stat
import sys
import tempfile
import typing as t
import zipfile
from dataclasses import dataclass
from pathlib import Path

import requests

from config import (
    CLI_BINARY_NAME,
    CW_HYPERLANE_GIT,
    CW_HYPERLANE_VERSION,
    DOWNLOAD_TIMEOUT_SECS,
    INJECTIVE_CLI_GIT,
    INJECTIVE_CLI_VERSION,
)
from .errors import SetupError


def make_target() -> str:
    """Release asset suffix for this host, e.g. linux-amd64."""
    if sys.platform.startswith("linux"):
        os_name = "linux"
    elif sys.platform == "darwin":
        os_name = "darwin"
    else:
        raise SetupError(f"Current OS ({sys.platform}) is not supported by Injective")
    arch = "arm64" if platform.machine().lower() in ("arm64", "aarch64") else "amd64"
    return f"{os_name}-{arch}"


def download(url: str, dest: Path) -> Path:
    """Stream `url` into `dest`."""
    print(f"[Install] Downloading {url}")
    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECS) as resp:
            resp.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1 << 20):
                    f.write(chunk)
    except requests.RequestException as e:
        raise SetupError(f"Download of {url} failed: {e}") from e
    return dest


def unzip(archive: Path, dest: Path) -> None:
    print(f"[Install] Uncompressing {archive.name}")
    try:
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(dest)
    except zipfile.BadZipFile as e:
        raise SetupError(f"{archive} is not a valid zip archive: {e}") from e


@dataclass(frozen=True)
class CLISource:
    """Where the chain CLI comes from: a local binary, or a release to fetch."""

    path: t.Optional[Path] = None
    url: str = INJECTIVE_CLI_GIT
    version: str = INJECTIVE_CLI_VERSION

    @classmethod
    def local(cls, path: t.Union[str, Path]) -> "CLISource":
        return cls(path=Path(path))

    def install(self, cli_dir: t.Optional[Path] = None) -> Path:
        if self.path is not None:
            if not self.path.exists():
                raise SetupError(f"Local chain CLI {self.path} does not exist")
            print(f"[Install] Using local chain CLI {self.path}")
            return self.path

        cli_dir = Path(cli_dir or tempfile.mkdtemp(prefix="e2e-cli-"))
        archive_name = f"{make_target()}.zip"
        uri = f"{self.url}/releases/download/v{self.version}/{archive_name}"
        unzip(download(uri, cli_dir / archive_name), cli_dir)

        matches = [p for p in cli_dir.rglob(CLI_BINARY_NAME) if p.is_file()]
        if not matches:
            raise SetupError(f"No {CLI_BINARY_NAME} binary in release {self.version}")
        binary = matches[0]
        binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        print(f"[Install] Installed {CLI_BINARY_NAME} v{self.version} at {binary}")
        return binary


@dataclass(frozen=True)
class CodeSource:
    """Where the wasm artifacts come from: a local directory, or a release to fetch."""

    path: t.Optional[Path] = None
    url: str = CW_HYPERLANE_GIT
    version: str = CW_HYPERLANE_VERSION

    @classmethod
    def local(cls, path: t.Union[str, Path]) -> "CodeSource":
        return cls(path=Path(path))

    def install(self, codes_dir: t.Optional[Path] = None) -> t.Dict[str, Path]:
        if self.path is not None:
            return install_codes(self.path)

        codes_dir = Path(codes_dir or tempfile.mkdtemp(prefix="e2e-codes-"))
        release_name = f"cw-hyperlane-v{self.version}"
        archive_name = f"{release_name}.zip"
        print(f"[Install] Downloading cw-hyperlane v{self.version}")
        uri = f"{self.url}/releases/download/v{self.version}/{archive_name}"
        unzip(download(uri, codes_dir / archive_name), codes_dir)
        return install_codes(codes_dir)


def install_codes(dir_path: Path) -> t.Dict[str, Path]:
    """
    Map every `<name>.wasm` in `dir_path` to its path.

    Returns:
        Contract artifact name (file stem) -> path.
    """
    dir_path = Path(dir_path)
    if not dir_path.is_dir():
        raise SetupError(f"Contract artifact directory {dir_path} does not exist")
    print(f"[Install] Installing cw-hyperlane in Path: {dir_path}")
    codes = {
        entry.stem: entry
        for entry in sorted(dir_path.iterdir())
        if entry.is_file() and entry.suffix == ".wasm"
    }
    if not codes:
        raise SetupError(f"No .wasm artifacts in {dir_path}")
    return codes


def install_cosmos(
    cli_src: CLISource,
    code_src: CodeSource,
    cli_dir: t.Optional[Path] = None,
    codes_dir: t.Optional[Path] = None,
) -> t.Tuple[Path, t.Dict[str, Path]]:
    """Install the chain CLI and the contract artifact set."""
    return cli_src.install(cli_dir), code_src.install(codes_dir)


def sources_from_env(cli_path: t.Optional[str], codes_path: t.Optional[str]) -> t.Tuple[CLISource, CodeSource]:
    """Local overrides when given, remote releases otherwise."""
    cli_src = CLISource.local(cli_path) if cli_path else CLISource()
    code_src = CodeSource.local(codes_path) if codes_path else CodeSource()
    return cli_src, code_src
