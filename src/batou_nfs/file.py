import os
import os.path
import stat
import tempfile

import batou.utils

from batou_nfs.errors import ResourceApplyFailure
from batou_nfs.resource import Resource


def write_atomic(path, data, mode=None):
    """Replace `path` with `data` without exposing a partial file."""
    directory = os.path.dirname(path) or "."
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".batou_nfs-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if mode is not None:
            os.chmod(tmp, mode)
        elif os.path.exists(path):
            os.chmod(tmp, stat.S_IMODE(os.stat(path).st_mode))
        else:
            os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class File(Resource):
    """Ensure a directory or a regular file exists.

    Usage::

        File("/export/data", ensure="directory")
        File("/etc/motd", content="Welcome\\n", mode=0o644)

    Parent directories of a managed directory are created as needed.
    """

    kind = "File"
    namevar = "path"
    attributes = ("path", "ensure", "content", "mode")

    path = None
    ensure = "file"
    content = None
    mode = None

    def configure(self):
        if self.ensure not in ("directory", "file"):
            raise ValueError(f"Unknown file type: {self.ensure}")
        if self.ensure == "directory" and self.content is not None:
            raise ValueError("Directories can not have content.")
        if isinstance(self.content, str):
            self.content = self.content.encode("UTF-8")
        self.path = os.path.normpath(self.path)

    def current_state(self):
        if os.path.isdir(self.path):
            type_ = "directory"
        elif os.path.isfile(self.path):
            type_ = "file"
        elif os.path.lexists(self.path):
            type_ = "other"
        else:
            return dict(type=None, content=None, mode=None)
        content = None
        if type_ == "file" and self.content is not None:
            with open(self.path, "rb") as f:
                content = f.read()
        mode = stat.S_IMODE(os.lstat(self.path).st_mode)
        return dict(type=type_, content=content, mode=mode)

    def desired_matches(self, observed):
        if observed["type"] != self.ensure:
            return False
        if self.content is not None and observed["content"] != self.content:
            return False
        if self.mode is not None and observed["mode"] != self.mode:
            return False
        return True

    def update(self):
        observed = self.current_state()
        if observed["type"] not in (None, self.ensure):
            raise ResourceApplyFailure(
                self.ref, f"{self.path} exists and is not a {self.ensure}"
            )
        if self.ensure == "directory":
            os.makedirs(self.path, exist_ok=True)
            if self.mode is not None:
                os.chmod(self.path, self.mode)
        elif self.content is not None:
            write_atomic(self.path, self.content, self.mode)
        else:
            if observed["type"] is None:
                open(self.path, "ab").close()
            if self.mode is not None:
                os.chmod(self.path, self.mode)


class ExecGuarded(Resource):
    """Run a command unless a test command succeeds.

    For actions that have no native query::

        ExecGuarded("mkdir -p /export", unless="test -d /export")

    A failing command fails the resource.
    """

    kind = "ExecGuarded"
    namevar = "command"
    attributes = ("command", "unless")

    _required_params_ = {"unless": "true"}

    command = None
    unless = None

    def configure(self):
        if not self.unless:
            raise ValueError("`unless` must be set.")

    def current_state(self):
        try:
            self.cmd(self.unless)
        except batou.utils.CmdExecutionError:
            return False
        return True

    def desired_matches(self, test_passed):
        return test_passed

    def update(self):
        self.cmd(self.command)
