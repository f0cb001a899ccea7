import os
import stat

import batou.utils
import pytest

from batou_nfs.errors import ResourceApplyFailure
from batou_nfs.file import ExecGuarded, File
from batou_nfs.resource import CHANGED, UNCHANGED


def test_directory_is_created_with_parents(tmpdir):
    path = str(tmpdir / "export" / "data")
    directory = File(path, ensure="directory")

    assert directory.apply() == CHANGED
    assert os.path.isdir(path)
    assert directory.apply() == UNCHANGED


def test_directory_mode(tmpdir):
    path = str(tmpdir / "data")
    directory = File(path, ensure="directory", mode=0o750)
    directory.apply()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o750
    os.chmod(path, 0o755)
    assert directory.apply() == CHANGED
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o750


def test_file_content(tmpdir):
    path = str(tmpdir / "motd")
    motd = File(path, content="hello\n")

    assert motd.apply() == CHANGED
    assert motd.apply() == UNCHANGED
    with open(path, "w") as f:
        f.write("changed")
    assert motd.apply() == CHANGED
    with open(path) as f:
        assert f.read() == "hello\n"


def test_file_in_place_of_directory_fails(tmpdir):
    path = str(tmpdir / "data")
    with open(path, "w") as f:
        f.write("not a directory")
    with pytest.raises(ResourceApplyFailure):
        File(path, ensure="directory").apply()


def test_directory_can_not_have_content():
    with pytest.raises(ValueError):
        File("/srv", ensure="directory", content="x")


def test_unknown_attribute_is_rejected():
    with pytest.raises(TypeError):
        File("/srv", owner="root")


def test_exec_runs_when_test_fails(tmpdir):
    marker = str(tmpdir / "marker")
    exec_ = ExecGuarded(f"touch {marker}", unless=f"test -e {marker}")

    assert exec_.apply() == CHANGED
    assert os.path.exists(marker)
    assert exec_.apply() == UNCHANGED


def test_exec_is_skipped_when_test_passes(tmpdir, mocker):
    exec_ = ExecGuarded("mkdir -p /export", unless="test -d /export")
    cmd = mocker.patch.object(exec_, "cmd", return_value=("", ""))

    assert exec_.apply() == UNCHANGED
    cmd.assert_called_once_with("test -d /export")


def test_failing_exec_fails(tmpdir):
    exec_ = ExecGuarded("false", unless="false")
    with pytest.raises(batou.utils.CmdExecutionError):
        exec_.apply()


def test_exec_needs_a_test():
    with pytest.raises(ValueError):
        ExecGuarded("mkdir -p /export")
