"""Tests for program loading and linking."""

from pathlib import Path

import pytest

from deadcode_cli.errors import ProgramLoadError
from deadcode_cli.loader import entry_point_specs, load_program
from deadcode_cli.models import Position


class TestSampleProject:
    """Loading the bundled sample project."""

    def test_module_path_is_root_package(self, sample_project_path: Path):
        program = load_program([sample_project_path])
        assert program.module_path == "sample_project"

    def test_main_module_roots(self, sample_project_path: Path):
        program = load_program([sample_project_path])
        assert "sample_project.main.<module>" in program.roots
        assert "sample_project.main.<main>" in program.roots
        assert program.nodes["sample_project.main.<main>"].synthetic

    def test_method_node_fields(self, sample_project_path: Path):
        program = load_program([sample_project_path])
        node = program.nodes["sample_project.models.User.full_name"]
        assert node.name == "sample_project.models.User.full_name"
        assert node.rel_name == "User.full_name"
        assert node.unit == "sample_project.models"
        assert (node.pos.line, node.pos.column) == (15, 5)
        assert node.pos.filename.endswith("models.py")
        assert node.parent is None

    def test_test_variant_shares_positions(self, sample_project_path: Path):
        program = load_program([sample_project_path], include_tests=True)
        default = program.nodes["sample_project.utils.format_name"]
        test = program.nodes["sample_project.utils.format_name [test]"]
        assert default.pos == test.pos
        assert test.variant == "test"

    def test_tests_not_loaded_by_default(self, sample_project_path: Path):
        program = load_program([sample_project_path])
        assert not any(node.variant for node in program.nodes.values())
        assert not any(p.endswith("test_utils.py") for p in program.sources)


def test_syntax_error_fails_loading(make_project):
    root = make_project({"good.py": "x = 1\n", "bad.py": "def broken(:\n"})
    with pytest.raises(ProgramLoadError) as excinfo:
        load_program([root])
    assert excinfo.value.message == "modules contain errors"
    assert len(excinfo.value.errors) == 1


def test_no_modules(temp_dir: Path):
    with pytest.raises(ProgramLoadError, match="no modules"):
        load_program([temp_dir])


def test_resolves_class_attributes_and_inherited_methods(make_project):
    root = make_project({"shapes.py": '''
        class Base:
            def area(self):
                return 0

        class Square(Base):
            @staticmethod
            def unit():
                return Square()

        def main():
            Square.unit()
            Square.area(None)

        if __name__ == "__main__":
            main()
    '''})
    program = load_program([root])
    main = program.nodes["shapes.main"]
    assert main.refs == {"shapes.Square.unit", "shapes.Base.area"}
    assert "class:shapes.Square" in main.classes
    assert program.nodes["shapes.<main>"].refs == {"shapes.main"}
    assert program.classes["class:shapes.Square"].bases == ["class:shapes.Base"]


def test_cross_module_references(make_project):
    root = make_project({
        "app/__init__.py": "",
        "app/util.py": "def helper():\n    return 1\n",
        "app/__main__.py": '''
            from app import util
            from app.util import helper as h

            def run():
                util.helper()
                h()
        ''',
    })
    program = load_program([root / "app"])
    assert program.module_path == "app"
    assert "app.__main__.<module>" in program.roots
    assert program.nodes["app.__main__.run"].refs == {"app.util.helper"}
    # imports run the imported modules' bodies
    assert "app.util.<module>" in program.nodes["app.__main__.<module>"].refs


def test_unknown_receiver_becomes_selector(make_project):
    root = make_project({"jobs.py": '''
        def run(queue):
            queue.drain()
    '''})
    program = load_program([root])
    assert program.nodes["jobs.run"].selectors == {"drain"}
    assert program.nodes["jobs.run"].refs == set()


def test_external_base_classes(make_project):
    root = make_project({"handlers.py": '''
        import http.server

        class Handler(http.server.BaseHTTPRequestHandler):
            def do_GET(self):
                pass

        class Failure(Exception):
            pass

        class Local(Failure):
            pass
    '''})
    program = load_program([root])
    assert program.classes["class:handlers.Handler"].external_base
    assert program.classes["class:handlers.Handler"].methods == {"do_GET": ["handlers.Handler.do_GET"]}
    assert not program.classes["class:handlers.Failure"].external_base
    local = program.classes["class:handlers.Local"]
    assert not local.external_base
    assert local.bases == ["class:handlers.Failure"]


def test_pyproject_scripts_are_roots(make_project):
    root = make_project({
        "pyproject.toml": '''
            [project]
            name = "tool"

            [project.scripts]
            tool = "tool.cli:run"
        ''',
        "tool/__init__.py": "",
        "tool/cli.py": "def run():\n    pass\n",
    })
    program = load_program([root])
    assert program.module_path == "tool"
    assert program.roots == ["<entrypoints>"]
    entry = program.nodes["<entrypoints>"]
    assert entry.synthetic
    assert entry.refs == {"tool.cli.run", "tool.cli.<module>"}


def test_entry_point_specs():
    pyproject = {
        "project": {
            "scripts": {"a": "pkg.cli:main"},
            "gui-scripts": {"b": "pkg.gui:main"},
            "entry-points": {"pytest11": {"plug": "pkg.plugin"}},
        },
        "tool": {"poetry": {"scripts": {"c": "pkg.other:run"}}},
    }
    assert entry_point_specs(pyproject) == ["pkg.cli:main", "pkg.gui:main", "pkg.plugin", "pkg.other:run"]


def test_test_runner_roots(make_project):
    root = make_project({
        "calc.py": "def add(a, b):\n    return a + b\n",
        "tests/test_calc.py": '''
            import unittest
            from calc import add

            def helper():
                return 1

            def test_add():
                assert add(1, 2) == 3

            class CalcTest(unittest.TestCase):
                def setUp(self):
                    self.value = 1

                def test_value(self):
                    pass

                def _private(self):
                    pass
        ''',
    })
    program = load_program([root], include_tests=True)
    assert program.roots == ["test_calc.<module> [test]", "test_calc.<testrunner> [test]"]
    runner = program.nodes["test_calc.<testrunner> [test]"]
    assert runner.refs == {
        "test_calc.test_add [test]",
        "test_calc.CalcTest.setUp [test]",
        "test_calc.CalcTest.test_value [test]",
    }
    assert runner.classes == {"class:test_calc.CalcTest [test]"}
    assert program.nodes["calc.add"].pos == program.nodes["calc.add [test]"].pos
    assert program.nodes["calc.add"].pos == Position(str(root / "calc.py"), 1, 1)


def test_base_shadowed_by_subclass_name_is_external(make_project):
    root = make_project({"worker.py": '''
        from threading import Thread

        class Thread(Thread):
            def run(self):
                pass
    '''})
    program = load_program([root])
    info = program.classes["class:worker.Thread"]
    assert info.bases == []
    assert info.external_base


def test_base_with_one_unresolved_binding_is_external(make_project):
    root = make_project({"worker.py": '''
        try:
            from fastjob import Job
        except ImportError:
            class Job:
                pass

        class Task(Job):
            def perform(self):
                pass
    '''})
    program = load_program([root])
    task = program.classes["class:worker.Task"]
    assert task.bases == ["class:worker.Job"]
    assert task.external_base
