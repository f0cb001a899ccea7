import os.path
from collections import namedtuple

from batou_nfs.errors import UnsupportedPlatform

Platform = namedtuple(
    "Platform",
    [
        "family",
        "packages",
        "provider",
        "nfs_service",
        "idmapd_service",
        # Debian only starts idmapd if /etc/default/nfs-common asks for it.
        "needs_idmapd_default",
    ],
)

DEBIAN = Platform(
    family="debian",
    packages=("nfs-common", "nfs-kernel-server", "nfs4-acl-tools", "rpcbind"),
    provider="apt",
    nfs_service="nfs-kernel-server",
    idmapd_service="nfs-idmapd",
    needs_idmapd_default=True,
)

REDHAT = Platform(
    family="redhat",
    packages=("nfs-utils", "nfs4-acl-tools", "rpcbind"),
    provider="yum",
    nfs_service="nfs-server",
    idmapd_service="nfs-idmapd",
    needs_idmapd_default=False,
)

SLES = Platform(
    family="sles",
    packages=("nfs-kernel-server", "nfs4-acl-tools", "rpcbind"),
    provider="zypper",
    nfs_service="nfsserver",
    idmapd_service="nfs-idmapd",
    needs_idmapd_default=False,
)

PLATFORMS = {
    "ubuntu": DEBIAN,
    "debian": DEBIAN,
    "redhat": REDHAT,
    "rhel": REDHAT,
    "centos": REDHAT,
    "rocky": REDHAT,
    "almalinux": REDHAT,
    "sles": SLES,
    "suse": SLES,
}


def platform_for(os_family):
    """Return the platform profile or fail hard for unknown families."""
    try:
        return PLATFORMS[(os_family or "").strip().lower()]
    except KeyError:
        raise UnsupportedPlatform(os_family)


def detect_os_family(os_release="/etc/os-release"):
    """Read the distribution family from os-release. None if unknown.

    ``ID`` wins if it names a known family. Otherwise the first known entry
    of ``ID_LIKE`` is used (e.g. Rocky Linux is ``rhel centos fedora``).
    Unknown distributions return their ``ID`` so the error names them.

    """
    if not os.path.exists(os_release):
        return None
    fields = {}
    with open(os_release, "r") as f:
        for line in f:
            key, _, value = line.strip().partition("=")
            fields[key] = value.strip().strip("\"'")
    os_id = fields.get("ID", "").lower()
    for candidate in [os_id] + fields.get("ID_LIKE", "").lower().split():
        if candidate in PLATFORMS:
            return candidate
    return os_id or None
