# ============================================================================
# PROCESS SERVICE
# ============================================================================
# STATUS: Core - Process definition management
# PURPOSE: Load, validate and cache process definitions
# CREATED: 18 OCT 2026
# ============================================================================
"""
Process Service

Loads process definitions from YAML files and provides lookup
capabilities. Caches loaded processes.

Process files live in the processes directory (PROCESSES_DIR). A process
is looked up by its `process_id`, or by a path to a YAML file. Files named
`*.properties.yaml` are properties files and are never loaded as processes.

Every definition is checked before it is cached: dependency syntax,
unknown predecessors, self-references, unknown actions and cycles. An
invalid definition raises DefinitionError listing every problem, so no
process instance is ever created from it.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import yaml
from pydantic import ValidationError

from core.config import get_defaults
from core.errors import DefinitionError
from core.models import ProcessDefinition
from handlers import action_names
from orchestrator.engine.evaluator import get_evaluator

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")
_PROPERTIES_SUFFIXES = (".properties.yaml", ".properties.yml")


class ProcessService:
    """Service for loading and managing process definitions."""

    def __init__(
        self,
        processes_dir: Optional[str] = None,
        properties_dir: Optional[str] = None,
    ):
        """
        Args:
            processes_dir: Directory containing process YAML files
            properties_dir: Directory that relative properties references
                            resolve against (defaults to processes_dir)
        """
        defaults = get_defaults().orchestrator
        self.processes_dir = Path(processes_dir or defaults.processes_dir)
        self.properties_dir = Path(properties_dir or defaults.properties_dir or self.processes_dir)

        self._cache: Dict[str, ProcessDefinition] = {}
        self._errors: Dict[str, List[str]] = {}
        self._loaded = False

    def load_all(self) -> int:
        """
        Load all process definitions from the processes directory.

        Files that fail to load are logged and recorded in load_errors.

        Returns:
            Number of processes loaded
        """
        self._loaded = True
        if not self.processes_dir.exists():
            logger.warning(f"Processes directory not found: {self.processes_dir}")
            return 0

        count = 0
        for path in sorted(self.processes_dir.iterdir()):
            if path.suffix not in _YAML_SUFFIXES or path.name.endswith(_PROPERTIES_SUFFIXES):
                continue
            try:
                process = self.load_file(path)
            except DefinitionError as e:
                logger.error(f"Failed to load {path}: {e}")
                self._errors[str(path)] = e.errors
                continue
            self._cache[process.process_id] = process
            count += 1
            logger.info(f"Loaded process: {process.process_id} v{process.version}")

        logger.info(f"Loaded {count} processes from {self.processes_dir}")
        return count

    @property
    def load_errors(self) -> Dict[str, List[str]]:
        """Problems found by the last load_all(), keyed by file path."""
        return dict(self._errors)

    def get(self, process_id: str) -> Optional[ProcessDefinition]:
        """
        Get a process definition by id, or None if unknown.

        A value ending in .yaml/.yml that names an existing file is loaded
        from that file.

        Raises:
            DefinitionError: If a named file exists but is invalid
        """
        if not self._loaded:
            self.load_all()

        if process_id in self._cache:
            return self._cache[process_id]

        if process_id.endswith(_YAML_SUFFIXES):
            path = Path(process_id)
            if not path.is_absolute() and not path.exists():
                path = self.processes_dir / path
            if path.exists():
                return self.load_file(path)

        return None

    def get_or_raise(self, process_id: str) -> ProcessDefinition:
        """
        Get a process definition, raising if it cannot be loaded.

        Raises:
            DefinitionError: If the process is unknown or invalid
        """
        process = self.get(process_id)
        if process is None:
            raise DefinitionError(f"Process not found: {process_id}")
        return process

    def list_all(self) -> List[ProcessDefinition]:
        """List all loaded processes."""
        if not self._loaded:
            self.load_all()

        return list(self._cache.values())

    def register(self, process: ProcessDefinition) -> None:
        """
        Register a process definition (for testing or programmatic use).

        Raises:
            DefinitionError: If the definition is invalid
        """
        self.check(process)
        self._cache[process.process_id] = process
        logger.info(f"Registered process: {process.process_id}")

    def check(self, process: ProcessDefinition) -> List[str]:
        """
        Validate a process against the registered actions.

        Returns:
            Task names in topological order

        Raises:
            DefinitionError / CyclicDependencyError listing every problem
        """
        return get_evaluator().check(process, known_actions=action_names())

    def load_file(self, path: Union[str, Path]) -> ProcessDefinition:
        """
        Load and check a process from a YAML file.

        A file without a process_id takes its id from the file name.

        Raises:
            DefinitionError: If the file is unreadable or the process invalid
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise DefinitionError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, dict):
            raise DefinitionError(f"Process file {path} must contain a mapping")
        data.setdefault("process_id", path.stem)

        try:
            process = ProcessDefinition(**data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise DefinitionError(f"Invalid process in {path}: " + "; ".join(errors), errors) from e

        self.check(process)
        return process

    def load_properties(self, reference: Optional[str]) -> Dict[str, Any]:
        """
        Load a job's properties file (a YAML mapping).

        Relative references resolve against properties_dir.

        Raises:
            DefinitionError: If the file is missing, unreadable or not a mapping
        """
        if not reference:
            return {}

        path = Path(reference)
        if not path.is_absolute():
            path = self.properties_dir / path

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise DefinitionError(f"Cannot read properties {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise DefinitionError(f"Properties file {path} must contain a mapping")
        return data

    def reload(self) -> int:
        """
        Reload all processes from disk.

        Returns:
            Number of processes loaded
        """
        self._cache.clear()
        self._errors.clear()
        self._loaded = False
        return self.load_all()


__all__ = ["ProcessService"]
