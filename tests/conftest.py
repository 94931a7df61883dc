"""
Shared fixtures for the HarmonyOS installer tests.

ScriptedExecutor stands in for CommandExecutor so no real hdc binary is
needed: tests register canned outputs for hdc subcommands and inspect the
recorded invocations afterwards.
"""

import json
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from harmony_installer.config.settings import HdcConfig, StagingConfig, InstallationConfig
from harmony_installer.models.service_state import ServiceStateStore
from harmony_installer.services.command_executor import CommandResult, format_command
from harmony_installer.services.hdc_service import HdcService


@dataclass
class RecordedCall:
    args: List[str]
    working_dir: Optional[Path]
    env: Optional[Dict[str, str]]

    @property
    def subcommand(self) -> List[str]:
        """Arguments after any leading `-t <id>` target selector."""
        if len(self.args) >= 2 and self.args[0] == "-t":
            return self.args[2:]
        return self.args


@dataclass
class Rule:
    prefix: List[str]
    responses: List[object] = field(default_factory=list)

    def next_response(self):
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class ScriptedExecutor:
    """Fake executor answering hdc subcommands from registered rules."""

    def __init__(self):
        self.rules: List[Rule] = []
        self.calls: List[RecordedCall] = []

    def on(self, *prefix: str, output: str = "", exit_code: int = 0,
           raises: Optional[Exception] = None) -> 'ScriptedExecutor':
        """Answer subcommands starting with prefix; later rules win."""
        response = raises if raises is not None else (exit_code, output)
        for rule in self.rules:
            if rule.prefix == list(prefix):
                rule.responses.append(response)
                return self
        self.rules.insert(0, Rule(list(prefix), [response]))
        return self

    def run(self, binary_path, args: Sequence[str], working_dir=None, env=None, timeout=None) -> CommandResult:
        call = RecordedCall([str(a) for a in args], Path(working_dir) if working_dir else None, env)
        self.calls.append(call)

        for rule in self.rules:
            if call.subcommand[:len(rule.prefix)] == rule.prefix:
                response = rule.next_response()
                if isinstance(response, Exception):
                    raise response
                exit_code, output = response
                return CommandResult(format_command(binary_path, call.args), exit_code, output)

        return CommandResult(format_command(binary_path, call.args), 0, "")

    def subcommands(self) -> List[List[str]]:
        return [call.subcommand for call in self.calls]

    def calls_for(self, *prefix: str) -> List[RecordedCall]:
        return [call for call in self.calls if call.subcommand[:len(prefix)] == list(prefix)]


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def hdc_binary(tmp_path) -> Path:
    binary_dir = tmp_path / "toolchains"
    binary_dir.mkdir()
    binary = binary_dir / "hdc"
    binary.write_text("#!/bin/sh\n")
    return binary


@pytest.fixture
def hdc(executor, hdc_binary) -> HdcService:
    return HdcService(executor, HdcConfig(), binary_path=hdc_binary)


@pytest.fixture
def state_store() -> ServiceStateStore:
    return ServiceStateStore()


@pytest.fixture
def staging_config(tmp_path) -> StagingConfig:
    temp_root = tmp_path / "staging"
    return StagingConfig(temp_root=str(temp_root))


@pytest.fixture
def installation_config() -> InstallationConfig:
    return InstallationConfig()


def write_hap(path: Path, bundle_name: Optional[str] = "com.example.demo",
              main_element: Optional[str] = "EntryAbility",
              manifest_name: str = "module.json") -> Path:
    """Write a minimal install unit carrying a manifest."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        if bundle_name is not None:
            if manifest_name == "module.json":
                manifest = {"app": {"bundleName": bundle_name},
                            "module": {"name": "entry", "mainElement": main_element}}
            elif manifest_name == "config.json":
                manifest = {"app": {"bundle": bundle_name},
                            "module": {"abilities": [{"name": f".{main_element}"}]}}
            else:
                manifest = {"summary": {"app": {"bundleName": bundle_name}}}
            zf.writestr(manifest_name, json.dumps(manifest))
        zf.writestr("resources.index", b"\x00\x01")
    return path


@pytest.fixture
def make_hap():
    return write_hap
