import batou


class ConfigurationError(Exception):
    """The declared resource graph can not be built.

    Raised before anything touches the host.
    """

    def report(self):
        batou.output.error(f"{self.__class__.__name__}: {self}")


class UnsupportedPlatform(ConfigurationError):
    def __init__(self, os_family):
        self.os_family = os_family
        super().__init__(f"Unsupported platform: {os_family!r}")


class CyclicDependency(ConfigurationError):
    def __init__(self, cycle):
        self.cycle = list(cycle)
        super().__init__(
            "Cyclic dependency: " + " -> ".join(str(r) for r in self.cycle)
        )


class ContradictoryResourceDeclaration(ConfigurationError):
    def __init__(self, ref, existing, new):
        self.ref = ref
        self.existing = existing
        self.new = new
        super().__init__(
            f"{ref} declared twice with different attributes: "
            f"{existing!r} != {new!r}"
        )


class UnknownResource(ConfigurationError):
    def __init__(self, ref):
        self.ref = ref
        super().__init__(f"{ref} is not part of the graph")


class InvalidResolverState(ConfigurationError):
    pass


class ExportNotImplemented(ConfigurationError, NotImplementedError):
    """Exports without NFSv4 have no implementation yet."""

    def __init__(self, source):
        self.source = source
        super().__init__(
            f"v3 export path not implemented (export of {source!r} "
            "requires nfs_v4)"
        )


class ResourceApplyFailure(Exception):
    """A resource could not reach its desired state."""

    def __init__(self, ref, reason):
        self.ref = ref
        self.reason = reason
        super().__init__(f"{ref}: {reason}")

    def report(self):
        batou.output.error(str(self))
