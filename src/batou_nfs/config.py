import os.path
import re

from batou_nfs.file import write_atomic
from batou_nfs.resource import Resource

SECTION = re.compile(r"^\s*\[([^\]]+)\]\s*$")


class ConfigSetting(Resource):
    r"""Set a single key in a configuration file, leaving the rest alone.

    INI-style files with sections::

        ConfigSetting("/etc/idmapd.conf", section="General",
                      key="Domain", value="example.com")

    Shell-style variable files (no section)::

        ConfigSetting("/etc/default/nfs-common", key="NEED_IDMAPD",
                      value="yes")

    Comments and unrelated lines are preserved. A missing key is added at
    the end of its section, a missing section at the end of the file.
    """

    kind = "ConfigSetting"
    namevar = "path"
    attributes = ("path", "section", "key", "value")

    _required_params_ = {"key": "KEY", "value": "value"}

    path = None
    section = None
    key = None
    value = None

    def configure(self):
        if not self.key:
            raise ValueError("`key` must be set.")
        if self.value is None:
            raise ValueError("`value` must be set.")
        self.value = str(self.value)
        self.pattern = re.compile(
            r"^\s*{}\s*=\s*(.*?)\s*$".format(re.escape(self.key))
        )

    @property
    def title(self):
        if self.section:
            return f"{self.path}:{self.section}/{self.key}"
        return f"{self.path}:{self.key}"

    @property
    def line(self):
        if self.section:
            return f"{self.key} = {self.value}"
        return f"{self.key}={self.value}"

    def _read(self):
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r") as f:
            return f.read().splitlines()

    def _section_range(self, lines):
        """Return (start, end) of the lines belonging to our section.

        `start` is None if the section does not exist.
        """
        if not self.section:
            return 0, len(lines)
        start = None
        for i, line in enumerate(lines):
            m = SECTION.match(line)
            if not m:
                continue
            if start is not None:
                return start, i
            if m.group(1).strip() == self.section:
                start = i + 1
        return start, len(lines)

    def _find(self, lines):
        start, end = self._section_range(lines)
        if start is None:
            return None, None
        for i in range(start, end):
            m = self.pattern.match(lines[i])
            if m:
                return i, m.group(1)
        return None, None

    def current_state(self):
        _, value = self._find(self._read())
        return value

    def desired_matches(self, value):
        return value == self.value

    def _patch(self, lines):
        lines = list(lines)
        index, _ = self._find(lines)
        if index is not None:
            lines[index] = self.line
            return lines
        start, end = self._section_range(lines)
        if start is None:
            if lines and lines[-1].strip():
                lines.append("")
            lines.extend([f"[{self.section}]", self.line])
            return lines
        # Insert behind the last non-blank line of the section.
        insert = end
        while insert > start and not lines[insert - 1].strip():
            insert -= 1
        lines.insert(insert, self.line)
        return lines

    def update(self):
        lines = self._patch(self._read())
        write_atomic(self.path, ("\n".join(lines) + "\n").encode("UTF-8"))
