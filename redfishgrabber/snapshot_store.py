"""Resource snapshot stores: in-memory and JSON files on disk."""

import json
import os
import re
from typing import Any, Iterator, Optional, Protocol

import yaml

INDEX_FILENAME = "index.yaml"
SNAPSHOT_FILENAME = "index.json"


class SnapshotStore(Protocol):
    """Anything that can persist one visited resource."""

    def put(self, path: str, snapshot: dict) -> None:
        ...


class MemoryStore:
    """Keeps snapshots in a dict keyed by normalized resource path.

    Overwriting a path is allowed; within one crawl it never happens.
    """

    def __init__(self):
        self.snapshots: dict[str, dict] = {}

    def put(self, path: str, snapshot: dict) -> None:
        self.snapshots[path] = snapshot

    def get(self, path: str, default: Optional[dict] = None) -> Optional[dict]:
        return self.snapshots.get(path, default)

    def paths(self) -> list[str]:
        return sorted(self.snapshots)

    def items(self) -> Iterator[tuple[str, dict]]:
        return iter(self.snapshots.items())

    def __contains__(self, path: object) -> bool:
        return path in self.snapshots

    def __len__(self) -> int:
        return len(self.snapshots)


class FileStore(MemoryStore):
    """Writes each snapshot as pretty-printed JSON under an output folder.

    The directory structure mirrors the resource path:

        /redfish/v1/Systems/1  ->  output_folder/redfish/v1/Systems/1/index.json

    Snapshots are also kept in memory so callers can read them back without
    touching the disk.
    """

    def __init__(self, output_folder: str):
        super().__init__()
        self.output_folder = output_folder
        self.saved_count: int = 0

    def put(self, path: str, snapshot: dict) -> None:
        super().put(path, snapshot)
        filepath = path_to_filepath(path, self.output_folder)
        if save_snapshot(filepath, snapshot):
            self.saved_count += 1

    def write_index(self) -> str:
        """Write the sorted list of stored resource paths as YAML.

        Returns:
            Filesystem path of the index file.
        """
        filepath = os.path.join(self.output_folder, INDEX_FILENAME)
        os.makedirs(self.output_folder, exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.paths(), f, explicit_start=True, default_flow_style=False)
        return filepath


def path_to_filepath(path: str, output_folder: str) -> str:
    """Map a normalized resource path to its snapshot file.

    Examples:
        "/"                       -> output_folder/index.json
        "/redfish/v1"             -> output_folder/redfish/v1/index.json
        "/redfish/v1/Chassis/1U"  -> output_folder/redfish/v1/Chassis/1U/index.json

    Args:
        path: Normalized resource path.
        output_folder: Local filesystem folder for output.

    Returns:
        Filesystem path for the snapshot file.
    """
    sub_dir = _sanitize_path(path.strip("/"))
    if sub_dir:
        return os.path.join(output_folder, sub_dir, SNAPSHOT_FILENAME)
    return os.path.join(output_folder, SNAPSHOT_FILENAME)


def save_snapshot(filepath: str, snapshot: Any) -> bool:
    """Save a snapshot as JSON, creating directories as needed.

    Args:
        filepath: Full filesystem path for the file.
        snapshot: JSON-serializable resource snapshot.

    Returns:
        True if saved successfully, False on error.
    """
    try:
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, ensure_ascii=False)

        return True
    except OSError as e:
        print(f"  [ERROR] Failed to save {filepath}: {e}")
        return False


def load_snapshot(filepath: str) -> Optional[dict]:
    """Read back a snapshot written by save_snapshot, or None if missing."""
    if not os.path.isfile(filepath):
        return None
    with open(filepath, "r", encoding="utf-8") as f:
        return json.load(f)


def _sanitize_path(path: str) -> str:
    """Sanitize a relative directory path for the filesystem.

    Args:
        path: Relative path string with / separators.

    Returns:
        Sanitized path safe for os.path.join.
    """
    parts = path.split("/")
    sanitized_parts = []
    for part in parts:
        # Remove invalid directory name characters
        clean = re.sub(r'[<>:"/\\|?*]', "_", part)
        clean = clean.strip(". ")
        if clean:
            sanitized_parts.append(clean)
    return os.path.join(*sanitized_parts) if sanitized_parts else ""
