"""Tests for bwrap command serialization and summaries."""

import pytest

from bwrap import BubblewrapSerializer, BubblewrapSummarizer, describe_binding
from model import Binding, BindingMode


class TestSerialize:
    """Test BubblewrapSerializer.serialize()."""

    def test_full_command_order(self, materialized_config, rootfs, project):
        cmd = materialized_config.build_command()
        assert cmd == [
            "bwrap",
            "--die-with-parent",
            "--unshare-all", "--share-net",
            "--unshare-user", "--uid", "0", "--gid", "0",
            "--overlay-src", str(rootfs.path), "--overlay", "/scratch/0-root/upper", "/scratch/0-root/work", "/",
            "--dev", "/dev", "--proc", "/proc",
            "--overlay-src", str(project), "--overlay", "/scratch/1-project/upper", "/scratch/1-project/work", str(project),
            "--clearenv", "--setenv", "HOME", "/root", "--setenv", "PATH", "/usr/bin:/bin",
            "--chdir", str(project),
            "--", "make", "test",
        ]

    def test_no_network(self, materialized_config):
        materialized_config.share_net = False
        cmd = materialized_config.build_command()
        assert "--unshare-all" in cmd
        assert "--share-net" not in cmd

    def test_persistent_root(self, materialized_config, rootfs):
        materialized_config.root = Binding(source=str(rootfs.path), dest="/", mode=BindingMode.PERSISTENT)
        cmd = materialized_config.build_command()
        idx = cmd.index("--bind")
        assert cmd[idx:idx + 3] == ["--bind", str(rootfs.path), "/"]

    def test_root_before_bindings(self, materialized_config, project):
        """The root overlay is mounted before anything nested in it."""
        cmd = materialized_config.build_command()
        assert cmd.index("/") < cmd.index("--dev") < cmd.index(str(project))

    def test_unmaterialized_binding_rejected(self, materialized_config):
        materialized_config.bindings.append(Binding(source="/data", dest="/data"))
        with pytest.raises(ValueError):
            materialized_config.build_command()

    def test_command_after_separator(self, materialized_config):
        materialized_config.command = ["sh", "-c", "echo --tmpfs"]
        cmd = materialized_config.build_command()
        assert cmd[cmd.index("--") + 1:] == ["sh", "-c", "echo --tmpfs"]

    def test_colored_contains_every_arg(self, materialized_config):
        colored = BubblewrapSerializer(materialized_config).serialize_colored()
        assert colored.startswith("[bold]bwrap[/bold]")
        assert "--overlay-src" in colored
        assert "[dim]--[/] make test" in colored


class TestSummarize:
    """Test BubblewrapSummarizer output."""

    def test_summary_lines(self, materialized_config, project):
        summary = BubblewrapSummarizer(materialized_config).summarize()
        assert "• Network: shared with host" in summary
        assert "uid_map '0 1000 1'" in summary
        assert "changes discarded on exit" in summary
        assert f"  - {project}: writable, changes discarded on exit" in summary
        assert "• Running: make test" in summary

    def test_edited_root(self, materialized_config, rootfs):
        materialized_config.root = Binding(source=str(rootfs.path), dest="/", mode=BindingMode.PERSISTENT)
        assert "EDITED IN PLACE" in materialized_config.get_explanation()

    def test_colored_summary(self, materialized_config):
        colored = BubblewrapSummarizer(materialized_config).summarize_colored()
        assert "Network: none" not in colored
        assert "[#" in colored


class TestDescribeBinding:
    """Test describe_binding() function."""

    def test_modes(self):
        assert describe_binding(Binding(source="", dest="/x", mode=BindingMode.HIDDEN)) == "/x: empty, host contents hidden"
        assert describe_binding(Binding(source="/a", dest="/a", mode=BindingMode.PERSISTENT)) == "/a: read-write, changes persist"
        assert describe_binding(Binding(source="/a", dest="/b")) == "/a → /b: writable, changes discarded on exit"
