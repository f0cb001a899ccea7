import os.path
import shlex

from batou_nfs.file import write_atomic
from batou_nfs.resource import Resource


def unescape(field):
    # fstab and /proc/mounts encode whitespace as octal escapes.
    return (
        field.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


def escape(field):
    return (
        field.replace("\\", "\\134")
        .replace(" ", "\\040")
        .replace("\t", "\\011")
        .replace("\n", "\\012")
    )


class Mount(Resource):
    """Ensure a filesystem is mounted and, optionally, listed in fstab.

    A bind mount of `/data` to `/export/data`::

        Mount("/export/data", device="/data", fstype="none",
              options="bind", atboot=True)

    Only the mounted state is checked against the kernel: a bind mount
    does not reveal its source in the mount table.
    """

    kind = "Mount"
    namevar = "path"
    attributes = ("path", "device", "fstype", "options", "ensure", "atboot")

    _required_params_ = {"device": "/srv"}

    path = None
    device = None
    fstype = "none"
    options = "bind"
    ensure = "mounted"
    atboot = True

    mounts_file = "/proc/mounts"
    fstab_file = "/etc/fstab"

    def configure(self):
        if self.ensure != "mounted":
            raise ValueError(f"Unsupported mount state: {self.ensure}")
        if not self.device:
            raise ValueError("`device` must be set.")
        self.path = os.path.normpath(self.path)

    @property
    def fstab_line(self):
        return (
            f"{escape(self.device)} {escape(self.path)} {self.fstype} "
            f"{self.options} 0 0"
        )

    def _mounted(self):
        with open(self.mounts_file) as f:
            for line in f:
                fields = line.split()
                if len(fields) > 1 and unescape(fields[1]) == self.path:
                    return True
        return False

    def _read_fstab(self):
        if not os.path.exists(self.fstab_file):
            return []
        with open(self.fstab_file) as f:
            return f.read().splitlines()

    def _fstab_index(self, lines):
        for i, line in enumerate(lines):
            fields = line.split()
            if not fields or fields[0].startswith("#"):
                continue
            if len(fields) > 1 and unescape(fields[1]) == self.path:
                return i
        return None

    def current_state(self):
        lines = self._read_fstab()
        index = self._fstab_index(lines)
        entry = None
        if index is not None:
            fields = lines[index].split()
            entry = (
                unescape(fields[0]),
                fields[2] if len(fields) > 2 else None,
                fields[3] if len(fields) > 3 else None,
            )
        return dict(mounted=self._mounted(), fstab=entry)

    def desired_matches(self, observed):
        if not observed["mounted"]:
            return False
        if self.atboot:
            return observed["fstab"] == (
                self.device,
                self.fstype,
                self.options,
            )
        return observed["fstab"] is None

    def update(self):
        self._update_fstab()
        if self._mounted():
            return
        if self.atboot:
            self.cmd(f"mount {shlex.quote(self.path)}")
        else:
            self.cmd(
                f"mount -t {shlex.quote(self.fstype)} "
                f"-o {shlex.quote(self.options)} "
                f"{shlex.quote(self.device)} {shlex.quote(self.path)}"
            )

    def _update_fstab(self):
        lines = self._read_fstab()
        index = self._fstab_index(lines)
        if self.atboot:
            if index is None:
                lines.append(self.fstab_line)
            elif lines[index] != self.fstab_line:
                lines[index] = self.fstab_line
            else:
                return
        elif index is not None:
            del lines[index]
        else:
            return
        self.log(f"updating {self.fstab_file}")
        write_atomic(self.fstab_file, ("\n".join(lines) + "\n").encode())
