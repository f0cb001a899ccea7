import shlex

from batou_nfs.resource import CHANGED, Resource

# `systemctl is-enabled` results for units without an [Install] section or
# whose boot state systemd derives itself. enable/disable can not change them.
UNMANAGED_BOOT_STATES = frozenset(
    ["static", "indirect", "generated", "alias", "transient"]
)


class Service(Resource):
    """Ensure a systemd unit is running (or stopped).

    A notification restarts a running service once per run::

        graph.notify(exports_file, Service("nfs-kernel-server"))

    """

    kind = "Service"
    namevar = "service"
    attributes = ("service", "ensure", "enable")

    service = None
    ensure = "running"
    # Manage start at boot as well. None leaves it alone.
    enable = True

    def configure(self):
        if self.ensure not in ("running", "stopped"):
            raise ValueError(f"Unknown service state: {self.ensure}")

    def _systemctl(self, verb, **kw):
        return self.cmd(f"systemctl {verb} {shlex.quote(self.service)}", **kw)

    def current_state(self):
        active, _ = self._systemctl("is-active", ignore_returncode=True)
        enabled, _ = self._systemctl("is-enabled", ignore_returncode=True)
        return dict(
            running=active.strip() == "active",
            enabled=enabled.strip(),
        )

    def _boot_state_matches(self, enabled):
        if self.enable is None or enabled in UNMANAGED_BOOT_STATES:
            return True
        return (enabled == "enabled") == self.enable

    def desired_matches(self, observed):
        if observed["running"] != (self.ensure == "running"):
            return False
        return self._boot_state_matches(observed["enabled"])

    def update(self):
        observed = self.current_state()
        if self.ensure == "running" and not observed["running"]:
            self._systemctl("start")
        elif self.ensure == "stopped" and observed["running"]:
            self._systemctl("stop")
        if not self._boot_state_matches(observed["enabled"]):
            self._systemctl("enable" if self.enable else "disable")

    def refresh(self):
        if self.ensure != "running":
            return self.apply()
        self.log("restarting")
        self._systemctl("restart")
        return CHANGED
