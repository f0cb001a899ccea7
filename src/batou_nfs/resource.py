import enum
from collections import namedtuple
from dataclasses import dataclass
from typing import Optional

import batou
import batou.utils


class ResourceRef(namedtuple("ResourceRef", ["kind", "name"])):
    """Typed identity of a resource: unique per convergence run."""

    __slots__ = ()

    def __str__(self):
        return f"{self.kind}[{self.name}]"


class Outcome(enum.Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"
    # A required resource failed or was skipped, apply() was never called.
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ConvergenceResult:

    outcome: Outcome
    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason):
        if isinstance(reason, Exception):
            reason = str(reason) or reason.__class__.__name__
        return cls(Outcome.FAILED, str(reason))

    @classmethod
    def skipped(cls, reason):
        return cls(Outcome.SKIPPED, str(reason))

    @property
    def ok(self):
        return self.outcome in (Outcome.UNCHANGED, Outcome.CHANGED)

    def __str__(self):
        if self.reason:
            return f"{self.outcome.value}: {self.reason}"
        return self.outcome.value


UNCHANGED = ConvergenceResult(Outcome.UNCHANGED)
CHANGED = ConvergenceResult(Outcome.CHANGED)


class Resource(object):
    """A single manageable unit of host state.

    Resources follow the batou component protocol: ``verify()`` raises
    ``batou.UpdateNeeded`` when the host deviates from the desired state and
    ``update()`` brings it back. Subclasses usually only implement
    ``current_state()``, ``desired_matches()`` and ``update()``.

    Usage::

        pkg = Package("nfs-common", provider="apt")
        pkg.apply()   # -> CHANGED the first time, UNCHANGED afterwards

    """

    kind = None
    namevar = None

    # Names of the attributes that make up the desired state. Two
    # declarations of the same identity agree if these are equal.
    attributes = ()

    def __init__(self, namevar=None, **kw):
        if namevar is not None:
            kw[self.namevar] = namevar
        for key, value in kw.items():
            default = getattr(self.__class__, key, property())
            if key.startswith("_") or isinstance(default, property):
                raise TypeError(
                    f"{self.__class__.__name__} got an unexpected "
                    f"attribute {key!r}"
                )
            setattr(self, key, value)
        if getattr(self, self.namevar, None) in (None, ""):
            raise ValueError(
                f"{self.__class__.__name__}: `{self.namevar}` must be set."
            )
        self.configure()

    def configure(self):
        pass

    @property
    def title(self):
        return getattr(self, self.namevar)

    @property
    def ref(self):
        return ResourceRef(self.kind, self.title)

    def desired(self):
        return {key: getattr(self, key) for key in self.attributes}

    def current_state(self):
        raise NotImplementedError()

    def desired_matches(self, observed):
        raise NotImplementedError()

    def verify(self):
        observed = self.current_state()
        if not self.desired_matches(observed):
            raise batou.UpdateNeeded()

    def update(self):
        raise NotImplementedError()

    def apply(self):
        try:
            self.verify()
        except batou.UpdateNeeded:
            self.log("updating")
            self.update()
            return CHANGED
        return UNCHANGED

    def predict(self):
        try:
            self.verify()
        except batou.UpdateNeeded:
            return CHANGED
        return UNCHANGED

    def refresh(self):
        """React to a notification from a changed resource."""
        return self.apply()

    def cmd(self, cmd, **kw):
        return batou.utils.cmd(cmd, **kw)

    def log(self, message, **format):
        batou.output.annotate(f"{self.ref}: {message}", **format)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.ref}>"
