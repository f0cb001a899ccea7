import collections
import os.path

from batou_nfs.errors import ContradictoryResourceDeclaration
from batou_nfs.file import write_atomic
from batou_nfs.resource import Resource, ResourceRef

HEADER = (
    "# This file is managed by batou_nfs. "
    "Local changes will be overwritten.\n"
)


class ExportFragmentAssembler(object):
    """Collect text fragments and render them into one file.

    Fragments keep the order in which they were first added, so the result
    only depends on the set of declarations, never on the order resources
    are applied in::

        assembler = ExportFragmentAssembler("/etc/exports")
        graph.add(assembler.fragment("a", "/export/a *(ro)\\n"))
        graph.add(assembler.aggregate())

    """

    def __init__(self, path="/etc/exports", header=HEADER):
        self.path = path
        self.header = header
        self.fragments = collections.OrderedDict()

    def add_fragment(self, name, content):
        if name in self.fragments:
            if self.fragments[name] != content:
                raise ContradictoryResourceDeclaration(
                    ResourceRef(TextFragment.kind, name),
                    self.fragments[name],
                    content,
                )
            return
        self.fragments[name] = content

    def render(self):
        parts = [self.header] if self.header else []
        parts.extend(self.fragments.values())
        return "".join(parts).encode("UTF-8")

    def fragment(self, name, content):
        self.add_fragment(name, content)
        return TextFragment(
            name, target=self.path, content=content, assembler=self
        )

    def aggregate(self, **kw):
        return AggregateFile(self.path, assembler=self, **kw)


class TextFragment(Resource):
    """One ordered contribution to an `AggregateFile`.

    Applying a fragment touches nothing on the host. It makes sure its
    content is part of the assembler and gives the graph a node that
    dependencies (e.g. the bind mount of an export) can hang off.
    """

    kind = "TextFragment"
    namevar = "fragment"
    attributes = ("fragment", "target", "content")

    _required_params_ = {"target": "/etc/exports", "content": ""}

    fragment = None
    target = None
    content = None
    assembler = None

    def configure(self):
        if self.assembler is None:
            self.assembler = ExportFragmentAssembler(self.target)

    def current_state(self):
        return self.assembler.fragments.get(self.fragment)

    def desired_matches(self, content):
        return content == self.content

    def update(self):
        self.assembler.add_fragment(self.fragment, self.content)


class AggregateFile(Resource):
    """A file that is always regenerated in full from its fragments."""

    kind = "AggregateFile"
    namevar = "path"
    attributes = ("path", "content", "mode")

    path = None
    assembler = None
    mode = 0o644

    def configure(self):
        if self.assembler is None:
            self.assembler = ExportFragmentAssembler(self.path)

    @property
    def content(self):
        return self.assembler.render()

    def current_state(self):
        if not os.path.isfile(self.path):
            return None
        with open(self.path, "rb") as f:
            return f.read()

    def desired_matches(self, content):
        return content == self.content

    def update(self):
        write_atomic(self.path, self.content, self.mode)
