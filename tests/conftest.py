"""Shared fixtures for alpine_imagegen tests.

The fake host stands in for the privileged commands the pipeline issues.
mount and umount edit a temporary mount table, apk.static lays down a
minimal base tree, and every other command succeeds unless told otherwise.
"""

import gzip
import io
import subprocess
import tarfile
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from alpine_imagegen.buildconfig.schema import BuildConfiguration
from alpine_imagegen.config import Settings
from alpine_imagegen.pipeline.context import BuildContext
from alpine_imagegen.rootfs.mounts import MountManager

SSHD_CONFIG_TEXT = """\
#Port 22
#PasswordAuthentication yes
#UsePrivilegeSeparation yes
Subsystem sftp /usr/lib/ssh/sftp-server
"""


class FakeHost:
    """Records commands and simulates their effect on the filesystem."""

    def __init__(self, mounts_file: Path) -> None:
        self.mounts_file = mounts_file
        self.mounts_file.write_text("proc /proc proc rw 0 0\n")
        self.calls: list[list[str]] = []
        # command name (or chrooted command name) -> exit code
        self.failures: dict[str, int] = {}
        # mount point names (e.g. "sys") whose mount fails
        self.failing_mounts: set[str] = set()
        # chrooted argv -> exit code
        self.chroot_results: dict[tuple[str, ...], int] = {}

    def run(self, argv, **kwargs):
        argv = [str(a) for a in argv]
        self.calls.append(argv)

        name = Path(argv[0]).name
        inner = Path(argv[2]).name if name == "chroot" and len(argv) > 2 else None
        for key in (name, inner):
            if key in self.failures:
                return subprocess.CompletedProcess(
                    argv, self.failures[key], "", f"{key}: simulated failure"
                )

        if name == "chroot" and tuple(argv[2:]) in self.chroot_results:
            return subprocess.CompletedProcess(
                argv, self.chroot_results[tuple(argv[2:])], "", ""
            )

        if name == "mount":
            if Path(argv[-1]).name in self.failing_mounts:
                return subprocess.CompletedProcess(
                    argv, 32, "", "mount: permission denied"
                )
            self._mount(argv)
        elif name == "umount":
            self._umount(argv[-1])
        elif name == "apk.static":
            self._provision(Path(argv[argv.index("--root") + 1]))
        return subprocess.CompletedProcess(argv, 0, "", "")

    def _mount(self, argv: list[str]) -> None:
        fstype = argv[argv.index("-t") + 1] if "-t" in argv else "sysfs"
        with self.mounts_file.open("a") as f:
            f.write(f"{fstype} {argv[-1]} {fstype} rw 0 0\n")

    def _umount(self, target: str) -> None:
        lines = self.mounts_file.read_text().splitlines()
        kept = [line for line in lines if line.split()[1] != target]
        self.mounts_file.write_text("".join(f"{line}\n" for line in kept))

    def _provision(self, root: Path) -> None:
        (root / "lib/apk/db").mkdir(parents=True, exist_ok=True)
        (root / "lib/apk/db/installed").write_text("P:alpine-base\n")
        (root / "bin").mkdir(parents=True, exist_ok=True)
        (root / "bin/busybox").write_bytes(b"\x7fELF")
        (root / "bin/bbsuid").write_bytes(b"\x7fELF")
        (root / "sbin").mkdir(parents=True, exist_ok=True)
        (root / "sbin/init").symlink_to("/bin/busybox")
        (root / "usr/bin").mkdir(parents=True, exist_ok=True)
        (root / "usr/bin/su").symlink_to("/bin/bbsuid")
        (root / "etc/ssh").mkdir(parents=True, exist_ok=True)
        (root / "etc/ssh/sshd_config").write_text(SSHD_CONFIG_TEXT)

    def mounted_points(self) -> list[str]:
        lines = self.mounts_file.read_text().splitlines()
        return [line.split()[1] for line in lines]

    def commands(self, name: str) -> list[list[str]]:
        return [c for c in self.calls if Path(c[0]).name == name]

    def chroot_commands(self) -> list[list[str]]:
        return [c[2:] for c in self.commands("chroot")]


@pytest.fixture
def fake_host(tmp_path):
    """Patch subprocess.run with a FakeHost backed by a temp mount table."""
    host = FakeHost(tmp_path / "mounts")
    with patch("alpine_imagegen.rootfs.runner.subprocess.run", side_effect=host.run):
        yield host


@pytest.fixture
def mount_manager(fake_host):
    return MountManager(mounts_file=fake_host.mounts_file)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated to the test's temporary directory."""
    return Settings(
        workspace_dir=tmp_path / "workspace",
        output_dir=tmp_path / "out",
        key_host="https://keys.example.org/keys",
        trust_keys=["alpine-devel@example.org-test.rsa.pub"],
    )


def make_apk_tools_package(payload: bytes = b"#!/bin/sh\n") -> bytes:
    """Build an .apk-style package of gzip tar segments ending in apk.static."""

    def segment(members: dict[str, bytes]) -> bytes:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tar:
            for name, data in members.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755
                tar.addfile(info, io.BytesIO(data))
        return gzip.compress(buf.getvalue())

    control = segment({".PKGINFO": b"pkgname = apk-tools-static\n"})
    data = segment({"sbin/apk.static": payload})
    return control + data


@pytest.fixture
def apk_tools_package() -> bytes:
    return make_apk_tools_package()


@pytest.fixture
def apk_package_factory():
    """Return the package builder for tests that need a custom payload."""
    return make_apk_tools_package


@pytest.fixture
def target_root(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def build_config(target_root):
    return BuildConfiguration(
        release="3.2",
        apk_tools="apk-tools-static-2.6.5-r1.apk",
        install_dir=target_root,
        mirror="http://example/alpine",
        image_name="alpine-3",
        name="Alpine Linux",
        description="test image",
    )


@pytest.fixture
def build_context(build_config, settings, mount_manager):
    """A build context over the fake host, mounts not yet acquired."""
    with httpx.Client() as client:
        yield BuildContext(
            config=build_config,
            settings=settings,
            build_date="20240102",
            mount_manager=mount_manager,
            client=client,
            output_dir=settings.output_dir,
        )
