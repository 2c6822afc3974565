from __future__ import annotations

import json

import pytest

from policykit.build import (
    AppSettings,
    EnvironmentSettings,
    build_policies,
    load_app_settings,
    substitute_settings,
)
from policykit.exceptions import PolicyKitError, SettingsFileError

from policy_samples import journey_orders, make_policy


APP_SETTINGS = {
    "EnvironmentsFolder": "Environments",
    "Environments": [
        {
            "Name": "Dev",
            "Tenant": "contosodev.onmicrosoft.com",
            "PolicySettings": {"IdentityExperienceFrameworkAppId": "dev-ief", "ProxyAppId": 42},
        },
        {"Name": "Legacy", "Tenant": "legacy.onmicrosoft.com"},
    ],
}


@pytest.fixture
def policy_root(tmp_path):
    root = tmp_path / "policies"
    (root / "Relying").mkdir(parents=True)
    (root / "Environments" / "Old").mkdir(parents=True)
    (root / "appsettings.json").write_text(json.dumps(APP_SETTINGS), encoding="utf-8")
    base = make_policy("B2C_1A_TrustFrameworkBase", journeys={"SignUp": [1, 3]}).replace(
        'TenantId="contoso.onmicrosoft.com"', 'TenantId="{Settings:Tenant}"'
    )
    (root / "B2C_1A_TrustFrameworkBase.xml").write_text(base, encoding="utf-8")
    rp = make_policy("B2C_1A_SignUp", base="B2C_1A_TrustFrameworkBase").replace(
        "</TrustFrameworkPolicy>",
        "<!-- {settings:IdentityExperienceFrameworkAppId} {Settings:ProxyAppId} {Settings:PolicyFilename} -->"
        "</TrustFrameworkPolicy>",
    )
    (root / "Relying" / "B2C_1A_SignUp.xml").write_text(rp, encoding="utf-8")
    (root / "Environments" / "Old" / "stale.xml").write_text(make_policy("Stale"), encoding="utf-8")
    return root


def test_substitute_settings_is_case_insensitive():
    env = EnvironmentSettings(Name="Test", Tenant="t.onmicrosoft.com", PolicySettings={"Key": "v$1\\g<0>"})
    body = "{SETTINGS:tenant}|{Settings:Filename}|{Settings:PolicyFilename}|{Settings:Environment}|{settings:key}"
    assert substitute_settings(body, "B2C_1A_Signin.xml", env) == (
        "t.onmicrosoft.com|B2C_1A_Signin|Signin|Test|v$1\\g<0>"
    )


def test_app_settings_defaults():
    settings = AppSettings.model_validate({"Environments": [{"Name": "Prod"}]})
    assert settings.environments_folder == "Environments"
    assert settings.ignore_pattern == "**/Environments/**"
    assert settings.environments[0].policy_settings is None


def test_load_app_settings_errors(tmp_path):
    with pytest.raises(SettingsFileError):
        load_app_settings(tmp_path / "appsettings.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(SettingsFileError):
        load_app_settings(bad)
    wrong = tmp_path / "wrong.json"
    wrong.write_text(json.dumps({"Environments": [{"Tenant": "no name"}]}), encoding="utf-8")
    with pytest.raises(SettingsFileError):
        load_app_settings(wrong)


def test_build_writes_each_environment(policy_root, tmp_path, caplog):
    out = tmp_path / "out"
    (out / "leftover").mkdir(parents=True)
    report = build_policies(policy_root, out)

    assert report.policy_files == 2
    assert report.renumbered_steps == 1
    assert report.environments == ["Dev"]
    assert not (out / "leftover").exists()
    assert not (out / "Legacy").exists()
    assert "Can't generate 'Legacy' environment policies" in caplog.text

    base = (out / "Dev" / "B2C_1A_TrustFrameworkBase.xml").read_text(encoding="utf-8")
    assert 'TenantId="contosodev.onmicrosoft.com"' in base
    assert journey_orders(base, "SignUp") == ["1", "2"]

    rp = (out / "Dev" / "Relying" / "B2C_1A_SignUp.xml").read_text(encoding="utf-8")
    assert "<!-- dev-ief 42 SignUp -->" in rp
    assert sorted(p.name for p in report.written) == ["B2C_1A_SignUp.xml", "B2C_1A_TrustFrameworkBase.xml"]
    assert not list(out.rglob("stale.xml"))


def test_build_without_renumber_keeps_orders(policy_root, tmp_path):
    out = tmp_path / "out"
    report = build_policies(policy_root, out, renumber=False)
    assert report.renumbered_steps == 0
    base = (out / "Dev" / "B2C_1A_TrustFrameworkBase.xml").read_text(encoding="utf-8")
    assert journey_orders(base, "SignUp") == ["1", "3"]


def test_build_refuses_to_delete_the_policy_folder(policy_root):
    with pytest.raises(PolicyKitError):
        build_policies(policy_root, policy_root)
    with pytest.raises(PolicyKitError):
        build_policies(policy_root, policy_root.parent)
    assert (policy_root / "appsettings.json").exists()
