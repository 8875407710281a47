"""Tests for the mount plan builder."""

from pathlib import Path

import pytest

from errors import JailConfigError
from model import BindingMode, Directive, DirectiveKind
from plan import build_mount_plan, resolve_host_path, resolve_jail_path


def ro(path=""):
    return Directive(kind=DirectiveKind.RO_OVERLAY, path=path)


def rw(path=""):
    return Directive(kind=DirectiveKind.PERSISTENT, path=path)


def hide(path=""):
    return Directive(kind=DirectiveKind.HIDE, path=path)


def mount(src, dst, persistent=False):
    return Directive(kind=DirectiveKind.MOUNT, path=src, dest=dst, persistent=persistent)


class TestDefaultPlan:
    """Test the plan with no directives."""

    def test_cwd_is_ephemeral_overlay(self, project, rootfs):
        """The working directory is bound as an ephemeral overlay by default."""
        plan = build_mount_plan([], project, rootfs)
        assert len(plan.bindings) == 1
        binding = plan.cwd_binding
        assert binding.source == str(project)
        assert binding.dest == str(project)
        assert binding.mode == BindingMode.EPHEMERAL

    def test_root_is_ephemeral_rootfs(self, project, rootfs):
        plan = build_mount_plan([], project, rootfs)
        assert plan.root.dest == "/"
        assert plan.root.source == str(rootfs.path)
        assert plan.root_mode == BindingMode.EPHEMERAL

    def test_non_mount_directives_ignored(self, project, rootfs):
        """Network, clone and quiet directives do not touch the plan."""
        directives = [
            Directive(kind=DirectiveKind.NO_NETWORK),
            Directive(kind=DirectiveKind.CLONE),
            Directive(kind=DirectiveKind.QUIET),
            Directive(kind=DirectiveKind.SELECT_FS, value="other"),
        ]
        plan = build_mount_plan(directives, project, rootfs)
        assert [b.dest for b in plan.bindings] == [str(project)]


class TestLastWriteWins:
    """Test override semantics for the same path."""

    def test_ro_then_rw_is_persistent(self, project, rootfs):
        """--ro=X followed by --rw=X binds X persistent."""
        plan = build_mount_plan([ro("src"), rw("src")], project, rootfs)
        assert plan.find(str(project / "src")).mode == BindingMode.PERSISTENT

    def test_rw_then_ro_is_ephemeral(self, project, rootfs):
        """--rw=X followed by --ro=X binds X ephemeral."""
        plan = build_mount_plan([rw("src"), ro("src")], project, rootfs)
        assert plan.find(str(project / "src")).mode == BindingMode.EPHEMERAL

    def test_rw_cwd_replaces_default(self, project, rootfs):
        """Bare --rw applies to the working directory."""
        plan = build_mount_plan([rw()], project, rootfs)
        assert len(plan.bindings) == 1
        assert plan.cwd_binding.mode == BindingMode.PERSISTENT

    def test_one_entry_per_destination(self, project, rootfs):
        plan = build_mount_plan([ro("src"), rw("src"), hide("src"), ro("src")], project, rootfs)
        dests = [b.dest for b in plan.bindings]
        assert len(dests) == len(set(dests))


class TestNesting:
    """Test ancestor/descendant interactions."""

    def test_hide_cwd_then_rw_subdir(self, project, rootfs):
        """--hide=. then --rw=sub: cwd hidden except sub, which is persistent."""
        plan = build_mount_plan([hide("."), rw("build")], project, rootfs)
        assert plan.cwd_binding.mode == BindingMode.HIDDEN
        assert plan.find(str(project / "build")).mode == BindingMode.PERSISTENT

    def test_later_ancestor_overrides_subtree(self, project, rootfs):
        """A later directive on a parent removes earlier nested entries."""
        plan = build_mount_plan([rw("build"), hide(".")], project, rootfs)
        assert plan.find(str(project / "build")) is None
        assert plan.cwd_binding.mode == BindingMode.HIDDEN

    def test_parents_before_children(self, project, rootfs):
        """Flattened bindings are ordered shallow-first."""
        plan = build_mount_plan([hide(".env"), ro(str(project.parent)), rw("src")], project, rootfs)
        dests = [b.dest for b in plan.bindings]
        assert dests == [str(project.parent), str(project / ".env"), str(project / "src")]

    def test_ancestor_removes_cwd_binding(self, project, rootfs):
        """--ro on a parent replaces the default cwd binding."""
        plan = build_mount_plan([ro("..")], project, rootfs)
        assert plan.cwd_binding is None
        assert plan.find(str(project.parent)).mode == BindingMode.EPHEMERAL

    def test_nested_custom_mounts_shallow_first(self, project, rootfs):
        """Custom mounts are ordered by depth whatever order they were given in."""
        directives = [mount(str(project / "src"), "/opt/app/src"), mount(str(project), "/opt")]
        plan = build_mount_plan(directives, project, rootfs)
        mounts = [b.dest for b in plan.bindings if b.origin == "mount"]
        assert mounts == ["/opt"]  # /opt came later, so it replaced /opt/app/src

        directives = [mount(str(project), "/opt"), mount(str(project / "src"), "/opt/app/src")]
        plan = build_mount_plan(directives, project, rootfs)
        mounts = [b.dest for b in plan.bindings if b.origin == "mount"]
        assert mounts == ["/opt", "/opt/app/src"]


class TestHide:
    """Test hide directives."""

    def test_hide_target_need_not_exist(self, project, rootfs):
        plan = build_mount_plan([hide("node_modules")], project, rootfs)
        binding = plan.find(str(project / "node_modules"))
        assert binding.mode == BindingMode.HIDDEN
        assert binding.to_args() == ["--tmpfs", str(project / "node_modules")]

    def test_hide_file_in_cwd(self, project, rootfs):
        """A file cannot take a tmpfs; /dev/null is bound over it instead."""
        plan = build_mount_plan([hide(".env")], project, rootfs)
        binding = plan.find(str(project / ".env"))
        assert binding.mode == BindingMode.HIDDEN
        assert binding.is_file
        assert binding.to_args() == ["--ro-bind", "/dev/null", str(project / ".env")]
        assert plan.cwd_binding.mode == BindingMode.EPHEMERAL

    def test_hide_directory_is_tmpfs(self, project, rootfs):
        binding = build_mount_plan([hide("src")], project, rootfs).find(str(project / "src"))
        assert not binding.is_file
        assert binding.to_args() == ["--tmpfs", str(project / "src")]


class TestFileBindings:
    """Test --ro, --rw and --mount on regular files."""

    def test_ro_file_is_ephemeral_file(self, project, rootfs):
        binding = build_mount_plan([ro(".env")], project, rootfs).find(str(project / ".env"))
        assert binding.mode == BindingMode.EPHEMERAL
        assert binding.is_file

    def test_rw_file_is_plain_bind(self, project, rootfs):
        binding = build_mount_plan([rw(".env")], project, rootfs).find(str(project / ".env"))
        assert binding.is_file
        assert binding.to_args() == ["--bind", str(project / ".env"), str(project / ".env")]

    def test_mount_file(self, project, rootfs):
        binding = build_mount_plan([mount(".env", "/etc/app.env")], project, rootfs).find("/etc/app.env")
        assert binding.is_file
        assert binding.source == str(project / ".env")

    def test_directories_are_not_files(self, project, rootfs):
        plan = build_mount_plan([ro("src"), mount("build", "/out")], project, rootfs)
        assert not any(b.is_file for b in plan.bindings)


class TestCustomMounts:
    """Test --mount directives."""

    def test_custom_mount_to_root_rejected(self, project, rootfs):
        """A custom mount onto / collides with the root fs."""
        with pytest.raises(JailConfigError):
            build_mount_plan([mount(str(project), "/")], project, rootfs)

    def test_relative_destination_is_jail_absolute(self, project, rootfs):
        plan = build_mount_plan([mount("src", "work/src", persistent=True)], project, rootfs)
        binding = plan.find("/work/src")
        assert binding.source == str(project / "src")
        assert binding.mode == BindingMode.PERSISTENT

    def test_missing_source_rejected(self, project, rootfs):
        with pytest.raises(JailConfigError):
            build_mount_plan([mount("does-not-exist", "/mnt")], project, rootfs)


class TestRootFsEdit:
    """Test --fs-edit and --home-edit."""

    def test_fs_edit_makes_root_persistent(self, project, rootfs):
        plan = build_mount_plan([Directive(kind=DirectiveKind.FS_EDIT)], project, rootfs)
        assert plan.root_mode == BindingMode.PERSISTENT
        assert plan.root.to_args() == ["--bind", str(rootfs.path), "/"]

    def test_fs_edit_keeps_host_bindings(self, project, rootfs):
        """Editing the root fs does not drop earlier host bindings."""
        directives = [rw("build"), Directive(kind=DirectiveKind.FS_EDIT)]
        plan = build_mount_plan(directives, project, rootfs)
        assert plan.find(str(project / "build")).mode == BindingMode.PERSISTENT
        assert plan.cwd_binding is not None

    def test_fs_edit_subdir(self, project, rootfs):
        plan = build_mount_plan([Directive(kind=DirectiveKind.FS_EDIT, path="nix")], project, rootfs)
        binding = plan.find("/nix")
        assert binding.source == str(rootfs.path / "nix")
        assert binding.mode == BindingMode.PERSISTENT
        assert plan.root_mode == BindingMode.EPHEMERAL

    def test_fs_edit_missing_subdir(self, project, rootfs):
        with pytest.raises(JailConfigError):
            build_mount_plan([Directive(kind=DirectiveKind.FS_EDIT, path="opt")], project, rootfs)

    def test_home_edit(self, project, rootfs):
        plan = build_mount_plan([Directive(kind=DirectiveKind.HOME_EDIT)], project, rootfs)
        binding = plan.find("/root")
        assert binding.source == str(rootfs.path / "root")
        assert binding.mode == BindingMode.PERSISTENT


class TestPathResolution:
    """Test host and jail path normalization."""

    def test_empty_is_cwd(self, project):
        assert resolve_host_path("", project) == project

    def test_relative_against_cwd(self, project):
        assert resolve_host_path("src/../build", project) == project / "build"

    def test_home_expansion(self, project, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_host_path("~/x", project) == (tmp_path / "x").resolve()

    def test_jail_path(self):
        assert resolve_jail_path("opt//a/../b") == "/opt/b"
        assert resolve_jail_path("") == "/"

    def test_missing_source_rejected(self, project, rootfs):
        """Nonexistent --ro/--rw sources are configuration errors."""
        with pytest.raises(JailConfigError):
            build_mount_plan([ro("missing")], project, rootfs)
        with pytest.raises(JailConfigError):
            build_mount_plan([rw("missing")], project, rootfs)

    def test_bind_over_root_rejected(self, project, rootfs):
        with pytest.raises(JailConfigError):
            build_mount_plan([rw("/")], project, rootfs)

    def test_cwd_at_root_has_no_default_binding(self, rootfs):
        plan = build_mount_plan([], Path("/"), rootfs)
        assert plan.bindings == []
