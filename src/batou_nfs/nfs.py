import enum
import posixpath
import shlex
import socket
from collections import namedtuple

from batou_nfs.config import ConfigSetting
from batou_nfs.errors import (
    ConfigurationError,
    ExportNotImplemented,
    InvalidResolverState,
)
from batou_nfs.exports import ExportFragmentAssembler
from batou_nfs.file import ExecGuarded, File
from batou_nfs.graph import DependencyGraph
from batou_nfs.mount import Mount
from batou_nfs.package import Package
from batou_nfs.platforms import platform_for
from batou_nfs.service import Service

EXPORTS_FILE = "/etc/exports"
IDMAPD_CONF = "/etc/idmapd.conf"
NFS_COMMON_DEFAULTS = "/etc/default/nfs-common"


def derive_export_name(source):
    """The last path segment of `source`: `/srv/data/` -> `data`."""
    name = posixpath.basename(source.rstrip("/"))
    if not name:
        raise ConfigurationError(
            f"Can not derive an export name from {source!r}, "
            "set `v4_export_name`."
        )
    return name


def default_idmap_domain():
    return socket.getfqdn().partition(".")[2] or "localdomain"


class ExportSpec(object):
    """A directory to export to NFS clients."""

    def __init__(self, source, v4_export_name=None, clients="localhost(ro)"):
        if not source:
            raise ConfigurationError("Export `source` must be set.")
        self.source = source
        self.v4_export_name = v4_export_name or derive_export_name(source)
        if "/" in self.v4_export_name or self.v4_export_name in (".", ".."):
            raise ConfigurationError(
                f"Invalid export name: {self.v4_export_name!r}"
            )
        self.clients = clients

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ConfigurationError(f"Export must be a mapping: {data!r}")
        data = {k: v for k, v in data.items() if v is not None}
        unknown = set(data) - {"source", "v4_export_name", "clients"}
        if unknown:
            raise ConfigurationError(
                "Unknown export settings: " + ", ".join(sorted(unknown))
            )
        return cls(**data)

    def __repr__(self):
        return (
            f"<ExportSpec {self.source} as {self.v4_export_name} "
            f"to {self.clients}>"
        )


class NFSServerConfig(object):

    def __init__(
        self,
        os_family,
        nfs_v4=False,
        nfs_v4_export_root="/export",
        nfs_v4_idmap_domain=None,
        nfs_v4_export_root_clients=None,
        exports=(),
    ):
        self.os_family = os_family
        self.nfs_v4 = bool(nfs_v4)
        if not isinstance(nfs_v4_export_root, str):
            raise ConfigurationError(
                f"Export root must be a path: {nfs_v4_export_root!r}"
            )
        self.nfs_v4_export_root = posixpath.normpath(nfs_v4_export_root)
        if not posixpath.isabs(self.nfs_v4_export_root):
            raise ConfigurationError(
                f"Export root must be absolute: {nfs_v4_export_root!r}"
            )
        self.nfs_v4_idmap_domain = (
            nfs_v4_idmap_domain or default_idmap_domain()
        )
        self.nfs_v4_export_root_clients = nfs_v4_export_root_clients
        if not isinstance(exports, (list, tuple)):
            raise ConfigurationError(
                f"`exports` must be a list, got {type(exports).__name__}"
            )
        self.exports = [
            e if isinstance(e, ExportSpec) else ExportSpec.from_dict(e)
            for e in exports
        ]

    @classmethod
    def from_dict(cls, data, os_family):
        # Empty YAML keys (`exports:`) mean "use the default".
        data = {k: v for k, v in (data or {}).items() if v is not None}
        known = {
            "nfs_v4",
            "nfs_v4_export_root",
            "nfs_v4_idmap_domain",
            "nfs_v4_export_root_clients",
            "exports",
        }
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                "Unknown settings: " + ", ".join(sorted(unknown))
            )
        return cls(os_family, **data)


class ResolverState(enum.Enum):
    UNRESOLVED = "unresolved"
    PACKAGES_SELECTED = "packages selected"
    IDMAP_SUBGRAPH_BUILT = "idmap subgraph built"
    EXPORTS_EXPANDED = "exports expanded"
    READY = "ready"


class Variant(enum.Enum):
    V4_ENABLED = "nfs_v4 enabled"
    V4_DISABLED = "nfs_v4 disabled"


NFSServerGraph = namedtuple(
    "NFSServerGraph", ["variant", "platform", "graph", "assembler"]
)


class VariantResolver(object):
    """Build the resource graph of an NFS server.

    Usage::

        config = NFSServerConfig("debian", nfs_v4=True, exports=[
            ExportSpec("/data", clients="10.0.0.0/24(rw)")])
        result = VariantResolver(config).resolve()
        ConvergenceEngine().converge(result.graph)

    The steps run in a fixed order, each one checks the state the previous
    one left behind. Nothing here touches the host.
    """

    def __init__(self, config):
        self.config = config
        self.state = ResolverState.UNRESOLVED
        self.graph = DependencyGraph()
        self.assembler = ExportFragmentAssembler(EXPORTS_FILE)
        self.platform = None
        self.variant = None

    def _expect(self, state):
        if self.state is not state:
            raise InvalidResolverState(
                f"Resolver is {self.state.value!r}, expected {state.value!r}"
            )

    def select_packages(self):
        self._expect(ResolverState.UNRESOLVED)
        self.platform = platform_for(self.config.os_family)
        graph = self.graph

        self.packages = [
            graph.add(Package(name, provider=self.platform.provider))
            for name in self.platform.packages
        ]
        self.nfs_service = graph.add(Service(self.platform.nfs_service))
        self.exports_file = graph.add(self.assembler.aggregate())
        for package in self.packages:
            graph.require(package, self.nfs_service)
            graph.require(package, self.exports_file)
        graph.require(self.exports_file, self.nfs_service)
        graph.notify(self.exports_file, self.nfs_service)

        self.state = ResolverState.PACKAGES_SELECTED

    def build_idmap_subgraph(self):
        self._expect(ResolverState.PACKAGES_SELECTED)
        if self.config.nfs_v4:
            self.variant = Variant.V4_ENABLED
            self._build_v4_enabled()
        else:
            self.variant = Variant.V4_DISABLED
            self._build_v4_disabled()
        self.state = ResolverState.IDMAP_SUBGRAPH_BUILT

    def _build_v4_enabled(self):
        graph = self.graph
        config = self.config

        self.idmapd_service = graph.add(
            Service(self.platform.idmapd_service, ensure="running")
        )
        edits = []
        if self.platform.needs_idmapd_default:
            edits.append(
                ConfigSetting(
                    NFS_COMMON_DEFAULTS, key="NEED_IDMAPD", value="yes"
                )
            )
        edits.append(
            ConfigSetting(
                IDMAPD_CONF,
                section="General",
                key="Domain",
                value=config.nfs_v4_idmap_domain,
            )
        )
        for package in self.packages:
            graph.require(package, self.idmapd_service)
        for edit in edits:
            edit = graph.add(edit)
            for package in self.packages:
                graph.require(package, edit)
            for service in (self.nfs_service, self.idmapd_service):
                graph.require(edit, service)
                graph.notify(edit, service)

        root = shlex.quote(config.nfs_v4_export_root)
        self.export_root = graph.add(
            ExecGuarded(f"mkdir -p {root}", unless=f"test -d {root}")
        )
        if config.nfs_v4_export_root_clients:
            self._add_export_line(
                config.nfs_v4_export_root,
                config.nfs_v4_export_root_clients,
                self.export_root,
            )

    def _build_v4_disabled(self):
        self.idmapd_service = self.graph.add(
            Service(
                self.platform.idmapd_service, ensure="stopped", enable=False
            )
        )
        for package in self.packages:
            self.graph.require(package, self.idmapd_service)

    def _add_export_line(self, path, clients, requires):
        fragment = self.graph.add(
            self.assembler.fragment(f"exports:{path}", f"{path} {clients}\n")
        )
        self.graph.require(requires, fragment)
        self.graph.require(fragment, self.exports_file)
        return fragment

    def expand_exports(self):
        self._expect(ResolverState.IDMAP_SUBGRAPH_BUILT)
        for export in self.config.exports:
            if self.variant is not Variant.V4_ENABLED:
                raise ExportNotImplemented(export.source)
            self._expand_v4_export(export)
        self.state = ResolverState.EXPORTS_EXPANDED

    def _expand_v4_export(self, export):
        graph = self.graph
        bind_path = posixpath.join(
            self.config.nfs_v4_export_root, export.v4_export_name
        )
        directory = graph.add(File(bind_path, ensure="directory"))
        graph.require(self.export_root, directory)
        mount = graph.add(
            Mount(
                bind_path,
                device=export.source,
                fstype="none",
                options="bind",
                atboot=True,
            )
        )
        graph.require(directory, mount)
        self._add_export_line(bind_path, export.clients, mount)

    def finish(self):
        self._expect(ResolverState.EXPORTS_EXPANDED)
        self.graph.order()
        self.state = ResolverState.READY
        return NFSServerGraph(
            self.variant, self.platform, self.graph, self.assembler
        )

    def resolve(self):
        self.select_packages()
        self.build_idmap_subgraph()
        self.expand_exports()
        return self.finish()
