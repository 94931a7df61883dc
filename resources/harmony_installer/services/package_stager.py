"""
Package staging for the HarmonyOS installer.

The stager copies a user-selected artifact into an isolated per-session
working directory, extracts archives, normalises permissions and locates the
install unit hdc should receive. The user's original files are never touched.
"""

import os
import shutil
import tarfile
import tempfile
import zipfile
import logging
from pathlib import Path
from typing import Optional, List, Union

from ..config.settings import StagingConfig, get_config
from ..errors import ArtifactMissingError, NoInstallUnitFoundError, InstallerError
from ..models.install_session import PackageArtifact, PackageKind, StagedPackage
from ..utils.logger import get_logger
from ..utils.platform_utils import is_windows

WORKSPACE_DIR_NAME = "workspace"
EXTRACTED_DIR_NAME = "extracted"

# macOS archive metadata, never a real install unit
IGNORED_DIR_NAMES = {"__MACOSX"}
IGNORED_FILE_PREFIX = "._"


class PackageStager:
    """
    Turns an artifact path of unknown shape into a concrete install unit.

    Each call to stage() creates a fresh session directory of the form
    `<tmp>/<prefix><random>/workspace`; cleanup() removes it again.
    """

    def __init__(self, staging_config: Optional[StagingConfig] = None):
        if staging_config is None:
            try:
                staging_config = get_config().staging
            except RuntimeError:
                staging_config = StagingConfig()
        self.staging_config = staging_config
        self.extension = staging_config.install_unit_extension.lower()

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    def create_session_dir(self) -> Path:
        """Create a new, uniquely named session directory."""
        temp_root = self.staging_config.temp_root
        if temp_root:
            Path(temp_root).mkdir(parents=True, exist_ok=True)
        session_dir = Path(tempfile.mkdtemp(prefix=self.staging_config.session_prefix, dir=temp_root))
        self._logger.debug(f"Created staging session: {session_dir}")
        return session_dir

    def stage(self, artifact_path: Union[str, Path],
              session_dir: Optional[Path] = None) -> StagedPackage:
        """
        Stage an artifact for installation.

        Args:
            artifact_path: File or directory chosen by the user
            session_dir: Existing empty session directory; created when omitted

        Returns:
            StagedPackage pointing at the install unit inside the session

        Raises:
            ArtifactMissingError: If the artifact does not exist
            NoInstallUnitFoundError: If an archive or directory holds no install unit
            InstallerError: If copying or extraction fails
        """
        source = Path(artifact_path).expanduser()
        if not source.exists():
            raise ArtifactMissingError(source)

        created_here = session_dir is None
        if session_dir is None:
            session_dir = self.create_session_dir()
        workspace = session_dir / WORKSPACE_DIR_NAME

        try:
            workspace.mkdir(parents=True, exist_ok=True)
            copied = self._copy_into(source, workspace)

            if source.suffix.lower() == self.extension:
                self.normalize_permissions(copied)
                artifact = PackageArtifact(source, PackageKind.INSTALL_UNIT, self.probe_file_type(copied))
                self._logger.info(f"Staged install unit: {copied.name}")
                return StagedPackage(artifact, session_dir, workspace, unit_path=copied)

            file_type = self.probe_file_type(copied)
            self._logger.debug(f"Detected file type of {source.name}: {file_type}")

            if copied.is_dir():
                kind = PackageKind.DIRECTORY
                search_root = copied
            elif self.is_archive(copied):
                kind = PackageKind.ARCHIVE
                search_root = self.extract(copied, workspace / EXTRACTED_DIR_NAME)
            else:
                # Unknown file: hand it to hdc as-is and let the binary decide
                self.normalize_permissions(copied)
                artifact = PackageArtifact(source, PackageKind.INSTALL_UNIT, file_type)
                return StagedPackage(artifact, session_dir, workspace, unit_path=copied)

            self.normalize_permissions(search_root)
            unit_path = self.find_install_unit(search_root)
            self._logger.info(f"Found install unit: {unit_path.relative_to(search_root)}")

            return StagedPackage(
                PackageArtifact(source, kind, file_type),
                session_dir,
                workspace,
                unit_path=unit_path,
                search_root=search_root
            )

        except (InstallerError, OSError, zipfile.BadZipFile, tarfile.TarError) as e:
            if created_here:
                self.cleanup(session_dir)
            if isinstance(e, InstallerError):
                raise
            raise InstallerError(f"Failed to stage {source}", str(e)) from e

    def _copy_into(self, source: Path, workspace: Path) -> Path:
        destination = workspace / source.name
        if source.is_dir():
            shutil.copytree(source, destination, symlinks=False)
        else:
            shutil.copy2(source, destination)
        return destination

    @staticmethod
    def is_archive(path: Path) -> bool:
        return path.is_file() and (zipfile.is_zipfile(path) or tarfile.is_tarfile(path))

    @staticmethod
    def probe_file_type(path: Union[str, Path]) -> str:
        """
        Describe a file's type from its content.

        Returns:
            "directory", "Zip archive data", "POSIX tar archive" or "data"
        """
        path = Path(path)
        if path.is_dir():
            return "directory"
        if zipfile.is_zipfile(path):
            return "Zip archive data"
        if tarfile.is_tarfile(path):
            return "POSIX tar archive"
        return "data"

    def extract(self, archive_path: Path, destination: Path) -> Path:
        """
        Extract a zip or tar archive.

        Args:
            archive_path: Archive inside the session workspace
            destination: Target directory, created if needed

        Returns:
            The destination directory
        """
        destination.mkdir(parents=True, exist_ok=True)
        self._logger.info(f"Extracting {archive_path.name}")

        if zipfile.is_zipfile(archive_path):
            with zipfile.ZipFile(archive_path, 'r') as zip_ref:
                zip_ref.extractall(destination)
        else:
            with tarfile.open(archive_path, 'r:*') as tar_ref:
                if hasattr(tarfile, "data_filter"):
                    tar_ref.extractall(destination, filter="data")
                else:
                    tar_ref.extractall(destination)

        return destination

    def normalize_permissions(self, path: Path) -> None:
        """Make everything under path readable and executable by everyone."""
        if is_windows():
            return

        targets = [path]
        if path.is_dir():
            for root, dirs, files in os.walk(path):
                targets.extend(Path(root) / name for name in dirs + files)

        for target in targets:
            if target.is_symlink():
                continue
            try:
                target.chmod(target.stat().st_mode | 0o555)
            except OSError as e:
                self._logger.warning(f"Could not set permissions on {target}: {e}")

    def _is_candidate(self, path: Path) -> bool:
        return (path.is_file()
                and path.suffix.lower() == self.extension
                and not path.name.startswith(IGNORED_FILE_PREFIX))

    def _search_directory(self, directory: Path) -> Optional[Path]:
        preferred = directory / self.staging_config.preferred_unit_name
        if preferred.is_file():
            return preferred

        entries = sorted(directory.iterdir(), key=lambda p: p.name)
        for entry in entries:
            if self._is_candidate(entry):
                return entry

        for entry in entries:
            if entry.is_dir() and entry.name not in IGNORED_DIR_NAMES:
                found = self._search_directory(entry)
                if found:
                    return found

        return None

    def find_install_unit(self, search_root: Union[str, Path]) -> Path:
        """
        Locate the install unit under a directory.

        The preferred unit name wins, then the first unit in the same
        directory by name, then the same rule applied to each subdirectory in
        name order.

        Raises:
            NoInstallUnitFoundError: If the tree holds no install unit
        """
        search_root = Path(search_root)
        if self._is_candidate(search_root):
            return search_root

        found = self._search_directory(search_root) if search_root.is_dir() else None
        if found is None:
            raise NoInstallUnitFoundError(search_root, self.extension)
        return found

    def find_all_units(self, search_root: Union[str, Path]) -> List[Path]:
        """List every install unit under a directory, sorted by path."""
        search_root = Path(search_root)
        if not search_root.is_dir():
            return []
        return sorted(
            path for path in search_root.rglob("*")
            if self._is_candidate(path) and not IGNORED_DIR_NAMES.intersection(path.parts)
        )

    def cleanup(self, session_dir: Optional[Path]) -> None:
        """Remove a session directory; failures are logged, never raised."""
        if not session_dir:
            return
        try:
            if session_dir.exists():
                shutil.rmtree(session_dir)
                self._logger.debug(f"Removed staging session: {session_dir}")
        except OSError as e:
            self._logger.warning(f"Failed to remove staging directory {session_dir}: {e}")
