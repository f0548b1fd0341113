"""
SCORM Manifest Document Model

An explicit, typed view of the parts of ``imsmanifest.xml`` the engine reads
and repairs (metadata, organizations, resources), plus a builder that
serializes the model back to a deterministic, pretty-printed document.

Elements the model does not describe (LOM records, sequencing rules,
dependencies, ...) are kept as ElementTree elements in ``extra`` lists and
written back unchanged.
"""

import io
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
from xml.sax.saxutils import escape, quoteattr

from ..services.errors import MalformedManifest

IMSCP_NAMESPACE = "http://www.imsproject.org/xsd/imscp_rootv1p1p2"
ADLCP_NAMESPACE = "http://www.adlnet.org/xsd/adlcp_rootv1p2"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"

IMSCP_2004_NAMESPACE = "http://www.imsglobal.org/xsd/imscp_v1p1"
ADLCP_2004_NAMESPACE = "http://www.adlnet.org/xsd/adlcp_v1p3"

SCORM_TYPE_ATTR = f"{{{ADLCP_NAMESPACE}}}scormtype"
DEFAULT_SCHEMA = "ADL SCORM"
DEFAULT_SCHEMA_VERSION = "1.2"

# Prefixes authoring tools commonly use without declaring them
WELL_KNOWN_NAMESPACES = {
    "adlcp": ADLCP_NAMESPACE,
    "xsi": XSI_NAMESPACE,
    "adlseq": "http://www.adlnet.org/xsd/adlseq_v1p3",
    "adlnav": "http://www.adlnet.org/xsd/adlnav_v1p3",
    "imsss": "http://www.imsglobal.org/xsd/imsss",
}

_ROOT_TAG = re.compile(
    rb"<!--.*?-->|<\?.*?\?>|<!DOCTYPE[^>]*>|<([A-Za-z_][\w.\-]*(?::[A-Za-z_][\w.\-]*)?)",
    re.DOTALL,
)


def split_tag(name: str) -> Tuple[str, str]:
    """Split a Clark-notation name into (namespace uri, local name)"""
    if name.startswith("{"):
        uri, local = name[1:].split("}", 1)
        return uri, local
    return "", name


def local_name(name: str) -> str:
    return split_tag(name)[1]


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if local_name(child.tag) == name]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    found = _children(element, name)
    return found[0] if found else None


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    return element.text.strip() or None


@dataclass
class ManifestMetadata:
    schema: Optional[str] = None
    schema_version: Optional[str] = None
    extra: List[ET.Element] = field(default_factory=list)

    @property
    def title(self) -> Optional[str]:
        """First localized string found under a ``title`` element"""
        for element in self.extra:
            for node in element.iter():
                if local_name(node.tag) != "title":
                    continue
                for string in node.iter():
                    if local_name(string.tag) in ("langstring", "string"):
                        value = _text(string)
                        if value:
                            return value
        return None


@dataclass
class ManifestItem:
    identifier: str
    identifierref: Optional[str] = None
    title: Optional[str] = None
    children: List["ManifestItem"] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    extra: List[ET.Element] = field(default_factory=list)

    def walk(self) -> Iterator["ManifestItem"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class ManifestOrganization:
    identifier: str
    title: Optional[str] = None
    items: List[ManifestItem] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    extra: List[ET.Element] = field(default_factory=list)

    def walk_items(self) -> Iterator[ManifestItem]:
        for item in self.items:
            yield from item.walk()


@dataclass
class ManifestResource:
    identifier: str
    type: Optional[str] = "webcontent"
    href: Optional[str] = None
    scorm_type: Optional[str] = None
    scorm_type_attr: str = SCORM_TYPE_ATTR
    files: List[str] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    extra: List[ET.Element] = field(default_factory=list)

    @property
    def is_sco(self) -> bool:
        return (self.scorm_type or "").strip().lower() == "sco"


@dataclass
class ManifestDocument:
    """
    Typed manifest tree.

    ``resources`` is ``None`` when the document has no resources block at
    all and an empty list when the block exists without resources. The
    first resource in document order is the primary (launch) resource.
    """

    identifier: Optional[str] = None
    version: Optional[str] = None
    namespace: str = IMSCP_NAMESPACE
    namespaces: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)
    metadata: Optional[ManifestMetadata] = None
    organizations: List[ManifestOrganization] = field(default_factory=list)
    default_organization: Optional[str] = None
    organizations_attributes: Dict[str, str] = field(default_factory=dict)
    resources: Optional[List[ManifestResource]] = None
    resources_attributes: Dict[str, str] = field(default_factory=dict)
    extra: List[ET.Element] = field(default_factory=list)
    # Prefixes used by the source document without a declaration, bound
    # for parsing only and not part of ``namespaces``
    undeclared_namespaces: Dict[str, str] = field(default_factory=dict)

    @property
    def primary_resource(self) -> Optional[ManifestResource]:
        if self.resources:
            return self.resources[0]
        return None

    @property
    def sco_resources(self) -> List[ManifestResource]:
        return [res for res in self.resources or [] if res.is_sco]

    def declares_namespace(self, uri: str) -> bool:
        return uri in self.namespaces.values()

    @classmethod
    def minimal(cls, launch_file: str) -> "ManifestDocument":
        """One organization, one item and one SCO resource at ``launch_file``"""
        return cls(
            identifier="course_manifest",
            version="1",
            namespace=IMSCP_NAMESPACE,
            namespaces={
                "": IMSCP_NAMESPACE,
                "adlcp": ADLCP_NAMESPACE,
                "xsi": XSI_NAMESPACE,
            },
            metadata=ManifestMetadata(
                schema=DEFAULT_SCHEMA, schema_version=DEFAULT_SCHEMA_VERSION
            ),
            organizations=[default_organization()],
            default_organization="org_1",
            resources=[default_resource(launch_file)],
        )


def default_organization() -> ManifestOrganization:
    return ManifestOrganization(
        identifier="org_1",
        title="Course",
        items=[
            ManifestItem(
                identifier="item_1", identifierref="resource_1", title="Course"
            )
        ],
    )


def default_resource(launch_file: str) -> ManifestResource:
    return ManifestResource(
        identifier="resource_1",
        type="webcontent",
        href=launch_file,
        scorm_type="sco",
        files=[launch_file],
    )


# ─── Parsing ────────────────────────────────────────────────────────────────

def _remaining_attributes(element: ET.Element, *known: str) -> Dict[str, str]:
    return {k: v for k, v in element.attrib.items() if k not in known}


def _parse_item(element: ET.Element) -> ManifestItem:
    item = ManifestItem(
        identifier=element.get("identifier", ""),
        identifierref=element.get("identifierref"),
        attributes=_remaining_attributes(element, "identifier", "identifierref"),
    )
    for child in element:
        name = local_name(child.tag)
        if name == "title" and item.title is None:
            item.title = _text(child)
        elif name == "item":
            item.children.append(_parse_item(child))
        else:
            item.extra.append(child)
    return item


def _parse_organization(element: ET.Element) -> ManifestOrganization:
    org = ManifestOrganization(
        identifier=element.get("identifier", ""),
        attributes=_remaining_attributes(element, "identifier"),
    )
    for child in element:
        name = local_name(child.tag)
        if name == "title" and org.title is None:
            org.title = _text(child)
        elif name == "item":
            org.items.append(_parse_item(child))
        else:
            org.extra.append(child)
    return org


def _parse_resource(element: ET.Element) -> ManifestResource:
    scorm_type_attr = next(
        (k for k in element.attrib if local_name(k).lower() == "scormtype"),
        None,
    )
    resource = ManifestResource(
        identifier=element.get("identifier", ""),
        type=element.get("type"),
        href=element.get("href"),
        scorm_type=element.get(scorm_type_attr) if scorm_type_attr else None,
        scorm_type_attr=scorm_type_attr or SCORM_TYPE_ATTR,
        attributes=_remaining_attributes(
            element, "identifier", "type", "href", scorm_type_attr or ""
        ),
    )
    for child in element:
        if local_name(child.tag) == "file" and set(child.attrib) == {"href"} \
                and len(child) == 0:
            resource.files.append(child.get("href"))
        else:
            resource.extra.append(child)
    return resource


def _parse_metadata(element: ET.Element) -> ManifestMetadata:
    metadata = ManifestMetadata()
    for child in element:
        name = local_name(child.tag)
        if name == "schema" and metadata.schema is None:
            metadata.schema = _text(child)
        elif name == "schemaversion" and metadata.schema_version is None:
            metadata.schema_version = _text(child)
        else:
            metadata.extra.append(child)
    return metadata


def _root_namespaces(data: bytes) -> Dict[str, str]:
    """Namespace declarations made on (or before) the root element"""
    namespaces: Dict[str, str] = {}
    for event, payload in ET.iterparse(io.BytesIO(data), events=("start-ns", "start")):
        if event == "start":
            break
        prefix, uri = payload
        namespaces.setdefault(prefix, uri)
    return namespaces


def _parse_tree(data: bytes) -> Tuple[ET.Element, Dict[str, str]]:
    return ET.fromstring(data), _root_namespaces(data)


def _bind_undeclared(data: bytes) -> Tuple[bytes, Dict[str, str]]:
    """
    Declare on the root element every well-known prefix the document uses
    without declaring it. Returns the patched bytes and the prefixes bound.
    """
    for match in _ROOT_TAG.finditer(data):
        if match.group(1) is None:
            continue
        tag_end = data.find(b">", match.end())
        start_tag = data[match.start():tag_end if tag_end != -1 else len(data)]
        declared = set(re.findall(rb"xmlns:([\w.\-]+)\s*=", start_tag))
        is_2004 = IMSCP_2004_NAMESPACE.encode() in start_tag

        bound: Dict[str, str] = {}
        for prefix, uri in WELL_KNOWN_NAMESPACES.items():
            token = prefix.encode()
            if token in declared or not re.search(rb"[<\s/]" + token + rb":", data):
                continue
            if prefix == "adlcp" and is_2004:
                uri = ADLCP_2004_NAMESPACE
            bound[prefix] = uri

        declarations = "".join(f' xmlns:{p}="{u}"' for p, u in bound.items())
        return data[:match.end()] + declarations.encode() + data[match.end():], bound
    return data, {}


def parse_manifest(data: bytes) -> ManifestDocument:
    """
    Parse manifest bytes into a ``ManifestDocument``.

    Well-known SCORM prefixes used without a declaration (``adlcp:scormtype``
    on a manifest that never binds ``adlcp``) are bound for parsing and
    reported in ``undeclared_namespaces`` rather than failing the parse.

    Raises:
        MalformedManifest: the bytes are not well-formed XML or the root
            element is not ``<manifest>``
    """
    undeclared: Dict[str, str] = {}
    try:
        root, namespaces = _parse_tree(data)
    except ET.ParseError as e:
        if "unbound prefix" in str(e):
            patched, undeclared = _bind_undeclared(data)
        if not undeclared:
            raise MalformedManifest(f"imsmanifest.xml is not well-formed: {e}") from e
        try:
            root, namespaces = _parse_tree(patched)
        except ET.ParseError as retry_error:
            raise MalformedManifest(
                f"imsmanifest.xml is not well-formed: {retry_error}"
            ) from retry_error
        for prefix in undeclared:
            namespaces.pop(prefix, None)

    namespace, name = split_tag(root.tag)
    if name != "manifest":
        raise MalformedManifest(
            f"Unexpected root element <{name}> in imsmanifest.xml"
        )

    doc = ManifestDocument(
        identifier=root.get("identifier"),
        version=root.get("version"),
        namespace=namespace,
        namespaces=namespaces,
        attributes=_remaining_attributes(root, "identifier", "version"),
        undeclared_namespaces=undeclared,
    )

    for child in root:
        name = local_name(child.tag)
        if name == "metadata" and doc.metadata is None:
            doc.metadata = _parse_metadata(child)
        elif name == "organizations":
            doc.default_organization = child.get("default")
            doc.organizations_attributes = _remaining_attributes(child, "default")
            for org in _children(child, "organization"):
                doc.organizations.append(_parse_organization(org))
        elif name == "resources" and doc.resources is None:
            doc.resources = [_parse_resource(r) for r in _children(child, "resource")]
            doc.resources_attributes = dict(child.attrib)
        else:
            doc.extra.append(child)
    return doc


# ─── Building ───────────────────────────────────────────────────────────────

class _Writer:
    """Pretty printer mapping namespace URIs onto the document's prefixes"""

    INDENT = "  "

    def __init__(self, namespaces: Dict[str, str], preferred: Optional[Dict[str, str]] = None):
        self.declared = dict(namespaces)
        self.prefixes: Dict[str, str] = {}
        for prefix, uri in namespaces.items():
            self.prefixes.setdefault(uri, prefix)
        # uri -> prefix to reuse for namespaces the document never declared
        self.preferred: Dict[str, str] = {}
        known = [*WELL_KNOWN_NAMESPACES.items(), ("adlcp", ADLCP_2004_NAMESPACE)]
        for prefix, uri in known + list((preferred or {}).items()):
            self.preferred[uri] = prefix
        self.lines: List[str] = []

    def qualify(self, name: str) -> str:
        uri, local = split_tag(name)
        if not uri:
            return local
        if uri == XML_NAMESPACE:
            return f"xml:{local}"
        prefix = self.prefixes.get(uri)
        if prefix is None and self.preferred.get(uri) not in (None, *self.declared):
            prefix = self.preferred[uri]
            self.declared[prefix] = uri
            self.prefixes[uri] = prefix
        if prefix is None:
            prefix = f"ns{len([p for p in self.declared if p.startswith('ns')]) + 1}"
            while prefix in self.declared:
                prefix += "_"
            self.declared[prefix] = uri
            self.prefixes[uri] = prefix
        return f"{prefix}:{local}" if prefix else local

    def qualify_attribute(self, name: str) -> str:
        # Unprefixed attributes never belong to the default namespace
        uri, local = split_tag(name)
        if uri and self.prefixes.get(uri) == "":
            alias = f"{{{uri}}}"
            self.prefixes.pop(uri)
            qualified = self.qualify(alias + local)
            self.prefixes[uri] = ""
            return qualified
        return self.qualify(name)

    def attrs(self, attributes: Dict[str, Optional[str]]) -> str:
        parts = [
            f" {self.qualify_attribute(k)}={quoteattr(v)}"
            for k, v in attributes.items() if v is not None
        ]
        return "".join(parts)

    def element(self, depth: int, tag: str, attributes=None, text=None,
                children: Optional[List] = None) -> None:
        pad = self.INDENT * depth
        name = self.qualify(tag)
        attr_text = self.attrs(attributes or {})
        if not children and text is None:
            self.lines.append(f"{pad}<{name}{attr_text}/>")
        elif not children:
            self.lines.append(f"{pad}<{name}{attr_text}>{escape(text)}</{name}>")
        else:
            self.lines.append(f"{pad}<{name}{attr_text}>")
            for render in children:
                render(depth + 1)
            self.lines.append(f"{pad}</{name}>")

    def raw(self, depth: int, element: ET.Element) -> None:
        """Write an unmodeled element and its subtree"""
        text = _text(element)
        subtree = [lambda d, c=child: self.raw(d, c) for child in element]
        self.element(depth, element.tag, dict(element.attrib), text, subtree)


def build_manifest(doc: ManifestDocument) -> str:
    """Serialize ``doc`` as a pretty-printed manifest document"""
    ns = doc.namespace
    writer = _Writer(doc.namespaces, doc.undeclared_namespaces)

    def tag(name: str) -> str:
        return f"{{{ns}}}{name}" if ns else name

    def raws(elements: List[ET.Element]) -> List:
        return [lambda d, e=e: writer.raw(d, e) for e in elements]

    def item_renderer(item: ManifestItem):
        def render(depth: int) -> None:
            children = []
            if item.title is not None:
                children.append(lambda d: writer.element(d, tag("title"), text=item.title))
            children += [item_renderer(child) for child in item.children]
            children += raws(item.extra)
            writer.element(depth, tag("item"), {
                "identifier": item.identifier,
                "identifierref": item.identifierref,
                **item.attributes,
            }, children=children)
        return render

    def organization_renderer(org: ManifestOrganization):
        def render(depth: int) -> None:
            children = []
            if org.title is not None:
                children.append(lambda d: writer.element(d, tag("title"), text=org.title))
            children += [item_renderer(item) for item in org.items]
            children += raws(org.extra)
            writer.element(depth, tag("organization"), {
                "identifier": org.identifier, **org.attributes,
            }, children=children)
        return render

    def resource_renderer(res: ManifestResource):
        def render(depth: int) -> None:
            children = [
                lambda d, href=href: writer.element(d, tag("file"), {"href": href})
                for href in res.files
            ]
            children += raws(res.extra)
            attributes = {
                "identifier": res.identifier,
                "type": res.type,
                res.scorm_type_attr: res.scorm_type,
                "href": res.href,
                **res.attributes,
            }
            writer.element(depth, tag("resource"), attributes, children=children)
        return render

    body: List = []
    if doc.metadata is not None:
        meta = doc.metadata
        meta_children = []
        if meta.schema is not None:
            meta_children.append(lambda d: writer.element(d, tag("schema"), text=meta.schema))
        if meta.schema_version is not None:
            meta_children.append(
                lambda d: writer.element(d, tag("schemaversion"), text=meta.schema_version)
            )
        meta_children += raws(meta.extra)
        body.append(lambda d: writer.element(d, tag("metadata"), children=meta_children))

    body.append(lambda d: writer.element(
        d, tag("organizations"),
        {"default": doc.default_organization, **doc.organizations_attributes},
        children=[organization_renderer(org) for org in doc.organizations],
    ))

    if doc.resources is not None:
        body.append(lambda d: writer.element(
            d, tag("resources"), dict(doc.resources_attributes),
            children=[resource_renderer(res) for res in doc.resources],
        ))

    body += raws(doc.extra)

    # Render the body first so every namespace it needs is known before the
    # root start tag is written.
    for render in body:
        render(1)
    body_lines = writer.lines

    writer.lines = []
    root_name = writer.qualify(tag("manifest"))
    root_attrs = writer.attrs({
        "identifier": doc.identifier,
        "version": doc.version,
        **doc.attributes,
    })
    declarations = "".join(
        f' xmlns{":" + prefix if prefix else ""}={quoteattr(uri)}'
        for prefix, uri in writer.declared.items()
    )

    lines = ['<?xml version="1.0" encoding="UTF-8"?>']
    lines.append(f"<{root_name}{root_attrs}{declarations}>")
    lines += body_lines
    lines.append(f"</{root_name}>")
    return "\n".join(lines) + "\n"
