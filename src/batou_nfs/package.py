import shlex

from batou_nfs.resource import Resource

QUERY = {
    "apt": "dpkg-query -W -f='${{Status}}' {package}",
    "yum": "rpm -q --qf '%{{NAME}}\\n' {package}",
    "zypper": "rpm -q --qf '%{{NAME}}\\n' {package}",
}

INSTALL = {
    "apt": "DEBIAN_FRONTEND=noninteractive apt-get install -y {package}",
    "yum": "yum install -y {package}",
    "zypper": "zypper --non-interactive install {package}",
}


class Package(Resource):
    """Ensure an OS package is installed.

    Usage::

        Package("nfs-common", provider="apt")

    """

    kind = "Package"
    namevar = "package"
    attributes = ("package", "provider")

    package = None
    provider = "apt"

    def configure(self):
        if self.provider not in INSTALL:
            raise ValueError(f"Unknown package provider: {self.provider}")

    def _format(self, template):
        return template.format(package=shlex.quote(self.package))

    def current_state(self):
        stdout, stderr = self.cmd(
            self._format(QUERY[self.provider]), ignore_returncode=True
        )
        if self.provider == "apt":
            return stdout.strip() == "install ok installed"
        return self.package in stdout.splitlines()

    def desired_matches(self, installed):
        return installed

    def update(self):
        self.cmd(self._format(INSTALL[self.provider]))
