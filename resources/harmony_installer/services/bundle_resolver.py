"""
Bundle identifier resolution for HarmonyOS install units.

An install unit is a zip archive carrying a JSON manifest. Only the manifest
entry is read; when no manifest yields a bundle name, a name is synthesised
from the file name so verification still has something to look for.
"""

import json
import logging
import zipfile
from pathlib import Path
from typing import Optional, Dict, Any, Union

from ..config.settings import InstallationConfig, get_config
from ..errors import IdentifierUnresolvedError
from ..models.install_session import BundleIdentity, IdentifierSource
from ..utils.logger import get_logger

# Stage model, FA model, then the app pack summary
MANIFEST_NAMES = ("module.json", "config.json", "pack.info")


def _bundle_from_module_json(data: Dict[str, Any]) -> Optional[BundleIdentity]:
    bundle_name = (data.get("app") or {}).get("bundleName")
    if not bundle_name:
        return None
    ability = (data.get("module") or {}).get("mainElement")
    return BundleIdentity(bundle_name, ability, IdentifierSource.MANIFEST)


def _bundle_from_config_json(data: Dict[str, Any]) -> Optional[BundleIdentity]:
    app = data.get("app") or {}
    bundle_name = app.get("bundleName") or app.get("bundle")
    if not bundle_name:
        return None

    ability = None
    abilities = (data.get("module") or {}).get("abilities") or []
    if abilities and isinstance(abilities[0], dict):
        ability = abilities[0].get("name")
        # FA model ability names are often written as ".MainAbility"
        if ability and ability.startswith("."):
            ability = ability[1:]
    return BundleIdentity(bundle_name, ability, IdentifierSource.MANIFEST)


def _bundle_from_pack_info(data: Dict[str, Any]) -> Optional[BundleIdentity]:
    bundle_name = ((data.get("summary") or {}).get("app") or {}).get("bundleName")
    if not bundle_name:
        return None
    return BundleIdentity(bundle_name, None, IdentifierSource.MANIFEST)


_MANIFEST_READERS = {
    "module.json": _bundle_from_module_json,
    "config.json": _bundle_from_config_json,
    "pack.info": _bundle_from_pack_info,
}


class BundleIdentifierResolver:
    """Resolves the bundle name and main ability of an install unit."""

    def __init__(self, installation_config: Optional[InstallationConfig] = None):
        if installation_config is None:
            try:
                installation_config = get_config().installation
            except RuntimeError:
                installation_config = InstallationConfig()
        self.heuristic_prefix = installation_config.heuristic_bundle_prefix

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    def resolve(self, unit_path: Union[str, Path]) -> BundleIdentity:
        """
        Resolve the bundle identity of an install unit.

        Never raises: manifest failures fall back to the file-name heuristic,
        and an unusable file name yields an unknown identity.

        Args:
            unit_path: Staged install unit (zip file or unpacked directory)

        Returns:
            BundleIdentity recording where the name came from
        """
        unit_path = Path(unit_path)
        try:
            identity = self.read_manifest(unit_path)
            self._logger.info(f"Bundle name from manifest: {identity.bundle_name}")
            return identity
        except IdentifierUnresolvedError as e:
            self._logger.warning(e.message)

        identity = self.guess_from_filename(unit_path)
        if identity.is_known:
            self._logger.info(f"Using bundle name guessed from file name: {identity.bundle_name}")
        else:
            self._logger.warning(f"Bundle name of {unit_path.name} is unknown")
        return identity

    def read_manifest(self, unit_path: Path) -> BundleIdentity:
        """
        Read the bundle identity from the unit's manifest.

        Raises:
            IdentifierUnresolvedError: If no manifest names a bundle
        """
        if unit_path.is_dir():
            manifests = self._read_directory_manifests(unit_path)
        else:
            manifests = self._read_zip_manifests(unit_path)

        for name in MANIFEST_NAMES:
            data = manifests.get(name)
            if data is None:
                continue
            identity = _MANIFEST_READERS[name](data)
            if identity:
                return identity

        if not manifests:
            raise IdentifierUnresolvedError(unit_path, "no manifest found")
        raise IdentifierUnresolvedError(unit_path, "manifest does not name a bundle")

    def _read_zip_manifests(self, unit_path: Path) -> Dict[str, Dict[str, Any]]:
        manifests: Dict[str, Dict[str, Any]] = {}
        try:
            with zipfile.ZipFile(unit_path, 'r') as zip_ref:
                names = set(zip_ref.namelist())
                for manifest_name in MANIFEST_NAMES:
                    if manifest_name not in names:
                        continue
                    raw = zip_ref.read(manifest_name)
                    parsed = self._parse_json(unit_path, manifest_name, raw)
                    if parsed is not None:
                        manifests[manifest_name] = parsed
        except (zipfile.BadZipFile, OSError) as e:
            raise IdentifierUnresolvedError(unit_path, f"cannot read archive: {e}") from e
        return manifests

    def _read_directory_manifests(self, unit_path: Path) -> Dict[str, Dict[str, Any]]:
        manifests: Dict[str, Dict[str, Any]] = {}
        for manifest_name in MANIFEST_NAMES:
            manifest_path = unit_path / manifest_name
            if not manifest_path.is_file():
                continue
            try:
                raw = manifest_path.read_bytes()
            except OSError as e:
                raise IdentifierUnresolvedError(unit_path, f"cannot read {manifest_name}: {e}") from e
            parsed = self._parse_json(unit_path, manifest_name, raw)
            if parsed is not None:
                manifests[manifest_name] = parsed
        return manifests

    def _parse_json(self, unit_path: Path, manifest_name: str, raw: bytes) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(raw.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._logger.debug(f"Ignoring unreadable {manifest_name} in {unit_path.name}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def guess_from_filename(self, unit_path: Path) -> BundleIdentity:
        """
        Synthesise a bundle name from the file name.

        `MyApp-entry-default.hap` becomes `<prefix>.myapp`.
        """
        segment = unit_path.stem.split("-", 1)[0].strip().lower()
        if not segment:
            return BundleIdentity()
        return BundleIdentity(f"{self.heuristic_prefix}.{segment}", None, IdentifierSource.HEURISTIC)
