"""Shared fixtures for ajail tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from model import Binding, BindingMode, IdentityMapping, JailConfig, RootFsReference


@pytest.fixture
def rootfs(tmp_path):
    """A tiny root filesystem with /bin/sh, /root and /nix/store."""
    path = tmp_path / "store" / "fs" / "debian"
    for sub in ("bin", "root", "etc", "nix/store"):
        (path / sub).mkdir(parents=True)
    (path / "bin" / "sh").write_text("")
    return RootFsReference(name="debian", path=path)


@pytest.fixture
def project(tmp_path):
    """A working directory with a couple of entries."""
    path = tmp_path / "home" / "user" / "project"
    (path / "src").mkdir(parents=True)
    (path / "build").mkdir()
    (path / ".env").write_text("SECRET=1\n")
    return path.resolve()


@pytest.fixture
def scratch_base(tmp_path):
    """Directory that holds scratch roots."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def git_repo(project):
    """The project directory as a git repository with one commit."""
    if not shutil.which("git"):
        pytest.skip("git not installed")

    def git(*args):
        subprocess.run(
            ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
            cwd=project,
            check=True,
            capture_output=True,
        )

    git("init", "--quiet")
    (project / "README").write_text("hello\n")
    git("add", "README")
    git("commit", "--quiet", "-m", "initial")
    return project


@pytest.fixture
def materialized_config(rootfs, project):
    """JailConfig with scratch paths filled in by hand."""
    root = Binding(
        source=str(rootfs.path), dest="/", mode=BindingMode.EPHEMERAL, origin="rootfs",
        upper_dir="/scratch/0-root/upper", work_dir="/scratch/0-root/work",
    )
    cwd = Binding(
        source=str(project), dest=str(project), mode=BindingMode.EPHEMERAL, origin="cwd",
        upper_dir="/scratch/1-project/upper", work_dir="/scratch/1-project/work",
    )
    return JailConfig(
        rootfs=rootfs,
        root=root,
        command=["make", "test"],
        bindings=[cwd],
        identity=IdentityMapping(host_uid=1000, host_gid=1000),
        environment={"PATH": "/usr/bin:/bin", "HOME": "/root"},
        chdir=str(project),
    )
