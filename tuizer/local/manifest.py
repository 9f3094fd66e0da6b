import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from tuizer.local.config import effective_settings as config
from tuizer.command.errors import ManifestError

log = logging.getLogger(__name__)


class Manifest(BaseModel):
    """
    A manifest file: a named list of command descriptors.
    Each command entry is validated on its own when its `Command` is created.
    """
    name: Optional[str] = Field(None, description="Name shown for this set of commands")
    commands: List[Any] = Field(default_factory=list, description="Command descriptors")


class ManifestPicker:
    """Finds and loads the manifests stored in the manifests directory (`~/.tuizer` by default)."""

    def __init__(self, directory: Optional[Union[str, Path]] = None) -> None:
        self.directory = Path(directory or config.MANIFESTS_DIR)

    def list_manifests(self) -> List[Path]:
        """
        Returns the manifest files of the directory, sorted by name.

        :raises ManifestError: If the directory does not exist or holds no manifest.
        """
        if not self.directory.is_dir():
            raise ManifestError(f"No {self.directory} directory found", data=str(self.directory))

        manifests = sorted(
            path for path in self.directory.iterdir()
            if path.is_file() and path.suffix.lower() in config.MANIFEST_SUFFIXES
        )
        if not manifests:
            raise ManifestError(f"No manifest files found at {self.directory}", data=str(self.directory))

        log.debug(f"Found {len(manifests)} manifests in {self.directory}")
        return manifests

    def load_manifest(self, manifest_path: Union[str, Path]) -> Manifest:
        """
        Reads and validates a JSON or YAML manifest.

        :raises ManifestError: If the file cannot be read, parsed or validated.
        """
        path = Path(manifest_path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"Could not read manifest '{path}'", data=str(path)) from e

        try:
            if path.suffix.lower() == ".json":
                raw = json.loads(content)
            else:
                raw = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            log.error(f"Failed to parse manifest '{path}': {e}")
            raise ManifestError(f"Could not parse manifest '{path}'", data=str(path)) from e

        try:
            manifest = Manifest.model_validate(raw or {})
        except PydanticValidationError as e:
            log.error(f"Invalid manifest '{path}': {e}")
            raise ManifestError(f"Invalid manifest '{path}'", data=str(path)) from e

        log.info(f"Loaded manifest '{manifest.name or path.stem}' with {len(manifest.commands)} commands")
        return manifest
