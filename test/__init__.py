import importlib
import pathlib
import unittest


# Re-export every test case from the test_* submodules, so that
# `python -m unittest test` runs the entire suite.

for path in sorted(pathlib.Path(__file__).parent.glob('test_*.py')):
    module = importlib.import_module(f'test.{path.stem}')

    for name, value in vars(module).items():
        if (
            not name.startswith('_')
            and isinstance(value, type)
            and issubclass(value, unittest.TestCase)
        ):
            globals()[name] = value
