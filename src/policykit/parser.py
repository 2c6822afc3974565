"""Policy XML parsing and serialization.

B2C custom policies live in the ``http://schemas.microsoft.com/online/cpim/schemas/2013/06``
namespace, so every lookup here matches on the local element name.
"""

from __future__ import annotations

import io
import logging
import re
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape

from .exceptions import MissingPolicyIdError, PolicyParseError
from .models import PolicyDocument, PolicyFile, PolicyStep, SequenceGroup

logger = logging.getLogger(__name__)

POLICY_ID_ATTR = "PolicyId"
TENANT_ID_ATTR = "TenantId"
BASE_POLICY_TAG = "BasePolicy"
BASE_POLICY_ID_TAG = "PolicyId"
GROUP_TAG = "UserJourney"
GROUP_NAME_ATTR = "Id"
STEP_TAG = "OrchestrationStep"

# Whitespace, XML declaration, processing instructions, comments and doctype before the root element.
PROLOG_RE = re.compile(r"\A(?:\s+|<\?.*?\?>|<!--.*?-->|<!DOCTYPE[^>]*>)*", re.DOTALL)
RESERVED_PREFIX_RE = re.compile(r"ns\d+$")
BOM = "\ufeff"


def local_name(tag: object) -> str:
    # Comments and processing instructions carry a factory function as their tag.
    if not isinstance(tag, str):
        return ""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def iter_local(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield ``element`` and its descendants whose local tag name is ``name``, in document order."""
    for node in element.iter():
        if local_name(node.tag) == name:
            yield node


def _collect_namespaces(body: str) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    """Return every prefix declared in ``body`` and the ones declared on its root element."""
    namespaces: List[Tuple[str, str]] = []
    root_namespaces: List[Tuple[str, str]] = []
    in_root = True
    for event, item in ET.iterparse(io.StringIO(body), events=("start-ns", "start")):
        if event == "start":
            in_root = False
            continue
        if in_root:
            root_namespaces.append(item)
        if item not in namespaces:
            namespaces.append(item)
    return namespaces, root_namespaces


def _find_base_policy_id(root: ET.Element) -> Optional[str]:
    # Only /TrustFrameworkPolicy/BasePolicy/PolicyId counts; PolicyId elements elsewhere are ignored.
    for child in root:
        if local_name(child.tag) != BASE_POLICY_TAG:
            continue
        for item in child:
            if local_name(item.tag) == BASE_POLICY_ID_TAG:
                value = (item.text or "").strip()
                return value or None
    return None


def _parse_groups(root: ET.Element, label: str) -> List[SequenceGroup]:
    groups: List[SequenceGroup] = []
    for journey in iter_local(root, GROUP_TAG):
        name = journey.get(GROUP_NAME_ATTR)
        if not name:
            logger.debug("Ignoring %s without an %s attribute in %s", GROUP_TAG, GROUP_NAME_ATTR, label)
            continue
        steps = [PolicyStep(element) for element in iter_local(journey, STEP_TAG)]
        groups.append(SequenceGroup(name=name, steps=steps))
    return groups


def parse_policy(
    body: str,
    file_name: str | None = None,
    *,
    source: PolicyFile | None = None,
) -> PolicyDocument:
    """Parse a policy body into a :class:`PolicyDocument`.

    Raises :class:`PolicyParseError` for malformed XML and
    :class:`MissingPolicyIdError` when the root element has no ``PolicyId``.
    """
    label = file_name or "policy"
    body = body.removeprefix(BOM)
    try:
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
        parser.feed(body)
        root = parser.close()
        namespaces, root_namespaces = _collect_namespaces(body)
    except ET.ParseError as exc:
        raise PolicyParseError(f"{label} is not well-formed XML: {exc}", file_name=file_name) from exc

    policy_id = (root.get(POLICY_ID_ATTR) or "").strip()
    if not policy_id:
        raise MissingPolicyIdError(
            f"{label} has no {POLICY_ID_ATTR} attribute on its root element",
            file_name=file_name,
        )

    prolog_match = PROLOG_RE.match(body)
    return PolicyDocument(
        policy_id=policy_id,
        root=root,
        raw_body=body,
        base_policy_id=_find_base_policy_id(root),
        tenant_id=(root.get(TENANT_ID_ATTR) or "").strip() or None,
        groups=_parse_groups(root, label),
        file_name=file_name,
        prolog=prolog_match.group(0) if prolog_match else "",
        namespaces=namespaces,
        root_namespaces=root_namespaces,
        source=source,
    )


def parse_policy_file(policy_file: PolicyFile) -> PolicyDocument:
    return parse_policy(policy_file.data, policy_file.file_name, source=policy_file)


@contextmanager
def _registered_prefixes(namespaces: List[Tuple[str, str]]) -> Iterator[None]:
    # ElementTree keeps one prefix registry per process; it is restored once the document is written.
    saved = dict(ET._namespace_map)
    try:
        for prefix, uri in namespaces:
            if RESERVED_PREFIX_RE.match(prefix):
                continue
            ET.register_namespace(prefix, uri)
        yield
    finally:
        ET._namespace_map.clear()
        ET._namespace_map.update(saved)


def _restore_root_declarations(text: str, root_namespaces: List[Tuple[str, str]]) -> str:
    """Put back root ``xmlns`` declarations that ElementTree drops because nothing uses them."""
    end = text.find(">")
    if end < 0:
        return text
    if text[end - 1] == "/":
        end -= 1
    start_tag = text[:end].rstrip()
    missing = []
    for prefix, uri in root_namespaces:
        attr = f"xmlns:{prefix}" if prefix else "xmlns"
        if re.search(rf"\s{re.escape(attr)}=", start_tag):
            continue
        value = escape(uri, {'"': "&quot;"})
        missing.append(f' {attr}="{value}"')
    if not missing:
        return text
    return start_tag + "".join(missing) + text[len(start_tag):]


def serialize_policy(document: PolicyDocument) -> str:
    """Render the document tree back to text, keeping its prolog and namespace declarations."""
    with _registered_prefixes(document.namespaces):
        text = ET.tostring(document.root, encoding="unicode")
    text = _restore_root_declarations(text, document.root_namespaces)
    trailer = "\n" if document.raw_body.endswith("\n") else ""
    return f"{document.prolog}{text}{trailer}"
