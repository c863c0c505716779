"""File watcher that feeds changed local files to the brain API."""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.config import WatcherSettings
from src.rag.models import format_timestamp

logger = logging.getLogger(__name__)

# Sub-directories never descended into, even inside a watched project.
BLOCKED_SUBDIRS = (
    ".git",
    "node_modules",
    ".cache",
    "__pycache__",
    "chroma_data",
    "build",
    "dist",
    "target",
    "go/pkg/mod",
    ".config/notion-app-enhanced",
    ".config/Cursor",
    ".config/BraveSoftware",
    ".config/discord",
    ".config/spotify",
    ".local/share/Steam",
    ".local/share/Trash",
    ".docker",
    ".config/GitKraken",
    ".config/MongoDB Compass",
    ".config/Notion",
    ".config/teams-for-linux",
    ".config/Postman",
    ".config/pulse",
    ".config/vscode-vibrancy-continued-nodejs",
)

WATCHED_EXTENSIONS = frozenset(
    {".txt", ".md", ".conf", ".sh", ".json", ".js", ".ts", ".go", ".py", ".css", ".html", ".toml", ".yaml", ".yml"}
)
WATCHED_FILENAMES = frozenset({".zshrc", ".bashrc", ".bash_profile", ".gitconfig", "config"})

# Give editors a moment to finish writing before the file is read.
SETTLE_SECONDS = 0.1
REQUEST_TIMEOUT_SECONDS = 30


def should_process(path: str, is_dir: bool) -> bool:
    """Whether a path is indexed (files) or descended into (directories)."""
    normalized = path.replace(os.sep, "/")
    for blocked in BLOCKED_SUBDIRS:
        if f"/{blocked}/" in normalized or normalized.endswith(f"/{blocked}"):
            return False

    if is_dir:
        return True

    name = os.path.basename(normalized)
    if name in WATCHED_FILENAMES:
        return True
    return os.path.splitext(name)[1] in WATCHED_EXTENSIONS


def expand_home(path: str, home: str) -> str:
    if path.startswith("~/"):
        return os.path.join(home, path[2:])
    return path


def resolve_home(user_home: Optional[str]) -> str:
    return user_home or str(Path.home())


def load_paths_to_scan(config_path: str, home: str) -> List[str]:
    """
    Read scan roots, one per line. Blank lines and '#' comments are ignored.

    Returns an empty list when the file does not exist.
    """
    config_path = expand_home(config_path, home)
    if not os.path.exists(config_path):
        logger.warning(f"Scan paths file not found: {config_path}")
        return []

    paths = []
    with open(config_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                paths.append(expand_home(line, home))
    return paths


def is_text(data: bytes) -> bool:
    if b"\x00" in data:
        return False
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


class FileIngestPublisher:
    """Reads a changed file and posts it to the ingest endpoint."""

    def __init__(
        self,
        api_url: str,
        cooldown_seconds: float = 10.0,
        max_file_size_bytes: int = 25 * 1024 * 1024,
        client: Optional[httpx.Client] = None,
        settle_seconds: float = SETTLE_SECONDS,
        clock=time.monotonic,
    ):
        self.api_url = api_url
        self.cooldown_seconds = cooldown_seconds
        self.max_file_size_bytes = max_file_size_bytes
        self.client = client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)
        self.settle_seconds = settle_seconds
        self._clock = clock
        self._last_sent: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _in_cooldown(self, path: str) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last_sent.get(path)
            if last is not None and now - last < self.cooldown_seconds:
                return True
            self._last_sent[path] = now
        return False

    def build_payload(self, path: str) -> Optional[Dict[str, Any]]:
        """The ingest payload for a file, or None when it should not be sent."""
        try:
            stat = os.stat(path)
        except OSError:
            return None

        if stat.st_size > self.max_file_size_bytes:
            logger.info(f"Ignoring oversized file: {path}")
            return None

        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError:
            return None

        if not data:
            return None
        if not is_text(data):
            logger.info(f"Ignoring non-text file: {path}")
            return None

        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return {"filePath": path, "content": data.decode("utf-8"), "lastModified": format_timestamp(modified)}

    def publish(self, path: str) -> bool:
        """
        Send one file to the API unless it was sent within the cooldown.

        Returns:
            True if the API accepted the file
        """
        if self._in_cooldown(path):
            logger.debug(f"Cooldown active, skipping {path}")
            return False

        if self.settle_seconds > 0:
            time.sleep(self.settle_seconds)

        payload = self.build_payload(path)
        if payload is None:
            return False

        try:
            response = self.client.post(self.api_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {path} to the API: {e}")
            return False

        if 200 <= response.status_code < 300:
            logger.info(f"Sent {path}. Status: {response.status_code}")
            return True

        logger.error(f"API rejected {path}. Status: {response.status_code}")
        return False

    def close(self) -> None:
        self.client.close()


class BrainEventHandler(FileSystemEventHandler):
    """Publishes created and modified files that pass the path filter."""

    def __init__(self, submit):
        super().__init__()
        self._submit = submit

    def on_created(self, event: Any) -> None:
        if not event.is_directory and should_process(event.src_path, False):
            logger.info(f"Created: {event.src_path}")
            self._submit(event.src_path)

    def on_modified(self, event: Any) -> None:
        if not event.is_directory and should_process(event.src_path, False):
            logger.info(f"Modified: {event.src_path}")
            self._submit(event.src_path)


class BrainWatcher:
    """Initial scan of the configured roots, then live monitoring."""

    def __init__(
        self,
        watcher_settings: WatcherSettings,
        publisher: Optional[FileIngestPublisher] = None,
        max_workers: int = 4,
    ):
        if not watcher_settings.scan_paths_file:
            raise ValueError("WATCHER_SCAN_PATHS_FILE is not set.")

        self.settings = watcher_settings
        self.home = resolve_home(watcher_settings.user_home)
        self.publisher = publisher or FileIngestPublisher(
            api_url=watcher_settings.api_url,
            cooldown_seconds=watcher_settings.cooldown_seconds,
            max_file_size_bytes=watcher_settings.max_file_size_bytes,
        )
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="brain-publish")
        self.observer: Any = None
        self.roots: List[str] = []

    def submit(self, path: str) -> None:
        self._executor.submit(self._publish, path)

    def _publish(self, path: str) -> None:
        try:
            self.publisher.publish(path)
        except Exception as e:
            logger.error(f"Error publishing {path}: {e}", exc_info=True)

    def scan(self) -> List[str]:
        """
        Walk every root and publish the files that pass the filter.

        Returns:
            The files submitted for publishing
        """
        self.roots = [
            os.path.abspath(p) for p in load_paths_to_scan(self.settings.scan_paths_file, self.home)
        ]
        if not self.roots:
            logger.info("No scan paths configured; skipping the initial scan.")
            return []

        logger.info(f"Starting initial scan of {len(self.roots)} path(s)")
        submitted = []
        for root in self.roots:
            logger.info(f"Scanning {root}")
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = [d for d in dirnames if should_process(os.path.join(dirpath, d), True)]
                for name in filenames:
                    path = os.path.join(dirpath, name)
                    if should_process(path, False):
                        self.submit(path)
                        submitted.append(path)
        logger.info(f"Initial scan finished; {len(submitted)} file(s) submitted.")
        return submitted

    def start(self) -> None:
        """Run the initial scan and start watching the roots."""
        self.scan()
        self.observer = Observer()
        handler = BrainEventHandler(self.submit)
        for root in self.roots:
            if os.path.isdir(root):
                self.observer.schedule(handler, root, recursive=True)
            else:
                logger.warning(f"Not a directory, not watching: {root}")
        self.observer.start()
        logger.info("Brain watcher started.")

    def stop(self) -> None:
        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None
        self._executor.shutdown(wait=True)
        self.publisher.close()
        logger.info("Brain watcher stopped.")

    def run_forever(self) -> None:
        self.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping watcher.")
        finally:
            self.stop()
