from __future__ import annotations

import json
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .chain import MAX_CHAIN_DEPTH
from .discovery import discover_policy_files, read_policy_files
from .exceptions import PolicyKitError, SettingsFileError
from .logs import log_group
from .models import PolicyFile
from .renumber import renumber_all

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "appsettings.json"
POLICY_PREFIX = "B2C_1A_"


class EnvironmentSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., alias="Name")
    tenant: str = Field("", alias="Tenant")
    policy_settings: Optional[Dict[str, Any]] = Field(None, alias="PolicySettings")


class AppSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    environments_folder: str = Field("Environments", alias="EnvironmentsFolder")
    environments: List[EnvironmentSettings] = Field(default_factory=list, alias="Environments")

    @property
    def ignore_pattern(self) -> str:
        return f"**/{self.environments_folder}/**"


@dataclass
class BuildReport:
    policy_files: int = 0
    renumbered_steps: int = 0
    environments: List[str] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)


def load_app_settings(path: Path | str) -> AppSettings:
    settings_path = Path(path)
    if not settings_path.is_file():
        raise SettingsFileError(f"No {settings_path.name} found in: {settings_path}")
    try:
        payload = json.loads(settings_path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as exc:
        raise SettingsFileError(f"{settings_path} is not valid JSON: {exc}") from exc
    try:
        return AppSettings.model_validate(payload)
    except ValidationError as exc:
        raise SettingsFileError(f"{settings_path} has an unexpected shape: {exc}") from exc


def _setting_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _replace_token(text: str, key: str, value: str) -> str:
    pattern = re.compile(re.escape(f"{{Settings:{key}}}"), re.IGNORECASE)
    return pattern.sub(lambda _match: value, text)


def substitute_settings(body: str, file_name: str, environment: EnvironmentSettings) -> str:
    """Fill the ``{Settings:...}`` placeholders of a policy body for one environment."""
    stem = Path(file_name).stem
    content = _replace_token(body, "Tenant", environment.tenant)
    content = _replace_token(content, "Filename", stem)
    content = _replace_token(content, "PolicyFilename", stem.replace(POLICY_PREFIX, ""))
    content = _replace_token(content, "Environment", environment.name)
    for key, value in (environment.policy_settings or {}).items():
        content = _replace_token(content, key, _setting_text(value))
    return content


def _prepare_output(root: Path, output: Path) -> None:
    resolved_root = root.resolve()
    resolved_output = output.resolve()
    if resolved_output == resolved_root or resolved_output in resolved_root.parents:
        raise PolicyKitError(f"Output folder {output} would delete the policy folder {root}")
    with log_group(f"Preparing output folder: {output}", logger):
        if output.exists():
            logger.info("Deleting and recreating folder...")
            shutil.rmtree(output)
        else:
            logger.info("Creating folder...")
        output.mkdir(parents=True)


def write_environment(output: Path, environment: EnvironmentSettings, files: List[PolicyFile]) -> List[Path]:
    written: List[Path] = []
    environment_root = output / environment.name
    for policy_file in files:
        content = substitute_settings(policy_file.data, policy_file.file_name, environment)
        folder = environment_root / policy_file.sub_folder if policy_file.sub_folder else environment_root
        folder.mkdir(parents=True, exist_ok=True)
        target = folder / policy_file.file_name
        logger.info("Writing result to: %s", target)
        target.write_text(content, encoding="utf-8")
        written.append(target)
    return written


def build_policies(
    root: Path | str,
    output: Path | str,
    *,
    renumber: bool = True,
    settings_file: str = SETTINGS_FILE_NAME,
    max_depth: int = MAX_CHAIN_DEPTH,
) -> BuildReport:
    """Render the policies under ``root`` once per environment of its appsettings.json."""
    root_path = Path(root)
    output_path = Path(output)
    app_settings = load_app_settings(root_path / settings_file)
    report = BuildReport()

    ignore = app_settings.ignore_pattern
    with log_group(f"Searching policy files matching: {root_path}/**/*.xml ignoring {ignore}", logger):
        files = read_policy_files(root_path, discover_policy_files(root_path, ignore=ignore))
    report.policy_files = len(files)

    if renumber:
        with log_group("Renumbering steps in policies...", logger):
            results = renumber_all(files, max_depth=max_depth)
        report.renumbered_steps = sum(result.change_count for result in results)

    _prepare_output(root_path, output_path)

    with log_group("Starting processing of environments...", logger):
        for environment in app_settings.environments:
            if environment.policy_settings is None:
                logger.warning(
                    "Can't generate '%s' environment policies: the PolicySettings element is missing",
                    environment.name,
                )
                continue
            with log_group(f"Processing environment: {environment.name}", logger):
                report.written.extend(write_environment(output_path, environment, files))
            report.environments.append(environment.name)
    return report
