"""
Remote package download for the HarmonyOS installer.

Launch requests may reference a package by HTTP(S) URL; this service fetches
it into the downloads directory before the normal install pipeline runs.
"""

import time
import uuid
import logging
from pathlib import Path
from typing import Optional, Callable
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse, unquote

import requests

from ..config.settings import DownloadConfig, get_config
from ..errors import DownloadError
from ..utils.logger import get_logger
from ..utils.validators import get_validator


class DownloadStatus(Enum):
    """Download status states."""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DownloadProgress:
    """Progress information for downloads."""
    url: str
    filename: str
    total_size: Optional[int] = None
    downloaded_size: int = 0
    status: DownloadStatus = DownloadStatus.PENDING
    error_message: Optional[str] = None

    @property
    def progress_percentage(self) -> float:
        """Get download progress as percentage."""
        if self.total_size and self.total_size > 0:
            return (self.downloaded_size / self.total_size) * 100.0
        return 0.0


class DownloadService:
    """Downloads remote packages with streaming and retries."""

    USER_AGENT = "harmony-installer"

    def __init__(self, downloads_dir: Optional[Path] = None,
                 download_config: Optional[DownloadConfig] = None,
                 retry_delay: float = 2.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize download service.

        Args:
            downloads_dir: Directory receiving downloaded files
            download_config: Download settings; taken from the global config when omitted
            retry_delay: Seconds to wait between attempts
            session: requests session to use
        """
        try:
            config = get_config()
        except RuntimeError:
            config = None

        if download_config is None:
            download_config = config.downloads if config else DownloadConfig()
        if downloads_dir is None:
            downloads_dir = config.get_downloads_directory() if config else Path(download_config.downloads_dir)

        self.downloads_dir = Path(downloads_dir)
        self.config = download_config
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", self.USER_AGENT)

        self.progress_callback: Optional[Callable[[DownloadProgress], None]] = None

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    def set_progress_callback(self, callback: Callable[[DownloadProgress], None]) -> None:
        """Set progress callback receiving DownloadProgress updates."""
        self.progress_callback = callback

    def _update_progress(self, progress: DownloadProgress) -> None:
        if self.progress_callback:
            self.progress_callback(progress)

    def filename_for(self, url: str) -> str:
        """Derive a safe local file name from a URL."""
        name = Path(unquote(urlparse(url).path)).name
        return get_validator().sanitize_filename(name)

    def download(self, url: str, filename: Optional[str] = None) -> Path:
        """
        Download a file into the downloads directory.

        Args:
            url: HTTP(S) URL of the package
            filename: Optional local file name override

        Returns:
            Path of the downloaded file

        Raises:
            DownloadError: If the URL is invalid or every attempt failed
        """
        validation = get_validator().validate_url(url)
        if not validation:
            raise DownloadError(url, validation.message)

        filename = filename or self.filename_for(url)
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        target = self.downloads_dir / filename
        progress = DownloadProgress(url=url, filename=filename)

        self._logger.info(f"Downloading {url} to {target}")

        attempts = max(1, self.config.max_retries)
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                self._fetch(url, target, progress)
                self._logger.info(f"Download completed: {filename} ({progress.downloaded_size} bytes)")
                return target
            except (requests.exceptions.RequestException, OSError) as e:
                last_error = e
                progress.status = DownloadStatus.FAILED
                progress.error_message = str(e)
                self._logger.warning(f"Download attempt {attempt + 1} failed: {e}")

                if attempt < attempts - 1:
                    time.sleep(self.retry_delay)

        self._update_progress(progress)
        raise DownloadError(url, f"failed after {attempts} attempt(s): {last_error}")

    def _fetch(self, url: str, target: Path, progress: DownloadProgress) -> None:
        temp_file = target.parent / f"{target.name}.part.{uuid.uuid4().hex[:8]}"
        progress.status = DownloadStatus.DOWNLOADING
        progress.downloaded_size = 0
        self._update_progress(progress)

        try:
            with self.session.get(url, stream=True, timeout=self.config.download_timeout) as response:
                response.raise_for_status()
                content_length = response.headers.get("Content-Length")
                if content_length and content_length.isdigit():
                    progress.total_size = int(content_length)

                with open(temp_file, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.config.chunk_size):
                        if chunk:
                            f.write(chunk)
                            progress.downloaded_size += len(chunk)
                            self._update_progress(progress)

            temp_file.replace(target)
        finally:
            if temp_file.exists():
                temp_file.unlink()

        progress.status = DownloadStatus.COMPLETED
        self._update_progress(progress)
