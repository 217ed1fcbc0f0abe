# ============================================================================
# PROCESS SERVICE TESTS
# ============================================================================
# STATUS: Tests - Process definition loading
# PURPOSE: Verify YAML loading, validation, lookup and properties files
# CREATED: 18 OCT 2026
# ============================================================================
"""
Process Service Tests

Covers:
1. load_all: valid files cached by id, invalid files recorded,
   properties files skipped
2. Lookup by id and by YAML path
3. Validation against registered actions
4. Properties files
5. The shipped processes directory loads cleanly

Run with:
    pytest tests/test_process_service.py -v
"""

import pytest
from pathlib import Path

from core.errors import CyclicDependencyError, DefinitionError
from core.models import ProcessDefinition
from services.process_service import ProcessService


# ============================================================================
# FIXTURES
# ============================================================================

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def processes_dir(tmp_path):
    folder = tmp_path / "processes"
    folder.mkdir()
    (folder / "extract.yaml").write_text(
        "process_id: extract_orders\n"
        "version: 2\n"
        "tasks:\n"
        "  pull: echo\n"
        "  audit:\n"
        "    action: log\n"
        "    after: pull COMPLETES\n"
    )
    (folder / "unnamed.yml").write_text("tasks:\n  only: echo\n")
    (folder / "cyclic.yaml").write_text(
        "tasks:\n"
        "  a: {action: echo, after: b}\n"
        "  b: {action: echo, after: a}\n"
    )
    (folder / "unknown_action.yaml").write_text("tasks:\n  a: bulk_copy\n")
    (folder / "no_tasks.yaml").write_text("name: empty\n")
    (folder / "notes.txt").write_text("not a process\n")
    (folder / "nightly.properties.yaml").write_text("batch_size: 500\nmode: full\n")
    return folder


# ============================================================================
# LOADING
# ============================================================================

class TestLoadAll:

    def test_valid_files_cached(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        assert service.load_all() == 2
        ids = sorted(p.process_id for p in service.list_all())
        assert ids == ["extract_orders", "unnamed"]

    def test_invalid_files_recorded(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        service.load_all()
        errors = service.load_errors
        assert sorted(Path(p).name for p in errors) == [
            "cyclic.yaml", "no_tasks.yaml", "unknown_action.yaml",
        ]
        assert any("bulk_copy" in e for e in errors[str(processes_dir / "unknown_action.yaml")])

    def test_missing_directory(self, tmp_path):
        service = ProcessService(processes_dir=str(tmp_path / "nope"))
        assert service.load_all() == 0
        assert service.list_all() == []

    def test_reload_picks_up_new_files(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        service.load_all()
        (processes_dir / "late.yaml").write_text("tasks:\n  a: echo\n")
        assert service.reload() == 3
        assert service.get("late") is not None


class TestLookup:

    def test_get_by_id(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        process = service.get("extract_orders")
        assert process.version == 2
        assert service.get("nope") is None

    def test_get_by_path(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        assert service.get("extract.yaml").process_id == "extract_orders"
        absolute = str(processes_dir / "unnamed.yml")
        assert service.get(absolute).process_id == "unnamed"

    def test_invalid_file_by_path_raises(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        with pytest.raises(CyclicDependencyError):
            service.get("cyclic.yaml")

    def test_get_or_raise(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        with pytest.raises(DefinitionError) as exc_info:
            service.get_or_raise("nope")
        assert "Process not found: nope" in str(exc_info.value)

    def test_register_checks_definition(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        with pytest.raises(DefinitionError):
            service.register(ProcessDefinition(process_id="bad", tasks={"a": "bulk_copy"}))
        service.register(ProcessDefinition(process_id="good", tasks={"a": "echo"}))
        assert service.get("good").process_id == "good"


# ============================================================================
# PROPERTIES
# ============================================================================

class TestProperties:

    def test_relative_to_processes_dir(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        assert service.load_properties("nightly.properties.yaml") == {"batch_size": 500, "mode": "full"}

    def test_separate_properties_dir(self, processes_dir, tmp_path):
        props = tmp_path / "props"
        props.mkdir()
        (props / "p.yaml").write_text("mode: delta\n")
        service = ProcessService(processes_dir=str(processes_dir), properties_dir=str(props))
        assert service.load_properties("p.yaml") == {"mode": "delta"}

    def test_none_and_empty(self, processes_dir):
        (processes_dir / "empty.yaml.props").write_text("")
        service = ProcessService(processes_dir=str(processes_dir))
        assert service.load_properties(None) == {}
        assert service.load_properties("empty.yaml.props") == {}

    @pytest.mark.parametrize("content", ["- a\n- b\n", "key: [unclosed\n"])
    def test_invalid(self, processes_dir, content):
        (processes_dir / "bad.props").write_text(content)
        service = ProcessService(processes_dir=str(processes_dir))
        with pytest.raises(DefinitionError):
            service.load_properties("bad.props")

    def test_missing(self, processes_dir):
        service = ProcessService(processes_dir=str(processes_dir))
        with pytest.raises(DefinitionError):
            service.load_properties("nope.yaml")


# ============================================================================
# SHIPPED PROCESSES
# ============================================================================

class TestShippedProcesses:

    def test_all_shipped_processes_load(self):
        service = ProcessService(processes_dir=str(REPO_ROOT / "processes"))
        count = service.load_all()
        assert service.load_errors == {}
        assert count >= 4
        assert service.get("nightly_load") is not None
