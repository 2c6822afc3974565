from __future__ import annotations

from xml.etree import ElementTree as ET

import pytest

from policykit.exceptions import MissingPolicyIdError, PolicyParseError
from policykit.parser import parse_policy

from policy_samples import B2C_NS, journey_orders, make_policy


def test_parse_policy_reads_ids_and_journeys():
    body = make_policy("B2C_1A_SignUpOrSignin", base="B2C_1A_Extensions", journeys={"SignUpOrSignIn": [1, 2, 3]})
    doc = parse_policy(body, "SignUpOrSignin.xml")
    assert doc.policy_id == "B2C_1A_SignUpOrSignin"
    assert doc.base_policy_id == "B2C_1A_Extensions"
    assert doc.tenant_id == "contoso.onmicrosoft.com"
    assert doc.file_name == "SignUpOrSignin.xml"
    assert [group.name for group in doc.groups] == ["SignUpOrSignIn"]
    assert doc.groups[0].orders == ["1", "2", "3"]


def test_parse_policy_without_base_or_tenant():
    doc = parse_policy(make_policy("B2C_1A_Base", tenant=None))
    assert doc.base_policy_id is None
    assert doc.tenant_id is None
    assert doc.groups == []


def test_malformed_xml_raises_parse_error():
    with pytest.raises(PolicyParseError) as ei:
        parse_policy("<TrustFrameworkPolicy PolicyId='x'>", "broken.xml")
    assert ei.value.file_name == "broken.xml"
    assert "broken.xml" in str(ei.value)


def test_missing_policy_id_raises():
    with pytest.raises(MissingPolicyIdError):
        parse_policy(make_policy(None), "nameless.xml")


def test_blank_policy_id_counts_as_missing():
    with pytest.raises(MissingPolicyIdError):
        parse_policy(f'<TrustFrameworkPolicy xmlns="{B2C_NS}" PolicyId="  " />')


def test_base_lookup_ignores_policy_id_elements_outside_base_policy():
    body = (
        f'<TrustFrameworkPolicy xmlns="{B2C_NS}" PolicyId="B2C_1A_Child">'
        "<RelyingParty><TechnicalProfile><PolicyId>B2C_1A_Unrelated</PolicyId></TechnicalProfile></RelyingParty>"
        "</TrustFrameworkPolicy>"
    )
    assert parse_policy(body).base_policy_id is None


def test_journeys_without_id_are_ignored():
    body = (
        f'<TrustFrameworkPolicy xmlns="{B2C_NS}" PolicyId="B2C_1A_Base"><UserJourneys>'
        '<UserJourney><OrchestrationSteps><OrchestrationStep Order="4" /></OrchestrationSteps></UserJourney>'
        '<UserJourney Id="Edit"><OrchestrationSteps><OrchestrationStep /></OrchestrationSteps></UserJourney>'
        "</UserJourneys></TrustFrameworkPolicy>"
    )
    doc = parse_policy(body)
    assert [group.name for group in doc.groups] == ["Edit"]
    assert doc.groups[0].orders == [None]


def test_unnamespaced_policies_are_supported():
    body = '<TrustFrameworkPolicy PolicyId="Plain"><UserJourney Id="J"><OrchestrationStep Order="9"/></UserJourney></TrustFrameworkPolicy>'
    doc = parse_policy(body)
    assert doc.groups[0].orders == ["9"]


def test_serialize_keeps_declaration_namespace_and_comments():
    body = make_policy("B2C_1A_Base", journeys={"J": [2]}).replace(
        "<UserJourneys>", "<!-- keep me --><UserJourneys>"
    )
    doc = parse_policy(body)
    doc.groups[0].steps[0].order = 1
    text = doc.to_xml()
    assert text.startswith('<?xml version="1.0" encoding="utf-8"?>\n<TrustFrameworkPolicy')
    assert f'xmlns="{B2C_NS}"' in text
    assert "ns0:" not in text
    assert "<!-- keep me -->" in text
    assert text.endswith("\n")
    assert journey_orders(text, "J") == ["1"]


def test_serialize_keeps_unused_root_declarations():
    body = make_policy("B2C_1A_Base", journeys={"J": [2]}).replace(
        f'xmlns="{B2C_NS}"',
        f'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        f'xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns="{B2C_NS}"',
    )
    doc = parse_policy(body)
    doc.groups[0].steps[0].order = 1
    text = doc.to_xml()
    root_tag = text.split(">", 2)[1]
    assert 'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"' in root_tag
    assert 'xmlns:xsd="http://www.w3.org/2001/XMLSchema"' in root_tag
    assert text.count("xmlns:xsi=") == 1
    assert journey_orders(text, "J") == ["1"]


def test_leading_bom_keeps_the_declaration():
    doc = parse_policy("\ufeff" + make_policy("B2C_1A_Base", journeys={"J": [2]}))
    assert doc.prolog.startswith('<?xml version="1.0" encoding="utf-8"?>')
    assert doc.to_xml().startswith('<?xml version="1.0" encoding="utf-8"?>\n<TrustFrameworkPolicy')


def test_serialize_leaves_the_global_prefix_registry_alone():
    body = (
        '<TrustFrameworkPolicy xmlns:ext="urn:example:ext" PolicyId="Plain">'
        '<ext:Extra/><UserJourney Id="J"><OrchestrationStep Order="2"/></UserJourney>'
        "</TrustFrameworkPolicy>"
    )
    text = parse_policy(body).to_xml()
    assert "<ext:Extra />" in text
    assert ET.tostring(ET.Element("{urn:example:ext}Other"), encoding="unicode").startswith("<ns0:Other")
