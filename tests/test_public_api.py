"""The package entry point exposes the public API"""

import importlib.util
from pathlib import Path

PACKAGE_INIT = Path(__file__).resolve().parent.parent / "__init__.py"


def load_package():
    spec = importlib.util.spec_from_file_location("safe_aa_kit", PACKAGE_INIT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_all_names_resolve():
    package = load_package()
    for name in package.__all__:
        assert hasattr(package, name), name


def test_version():
    assert load_package().__version__ == "1.0.0"


def test_reexports_are_module_objects():
    package = load_package()
    from smart_account import SafeAccount
    from errors import ValidationError

    assert package.SafeAccount is SafeAccount
    assert issubclass(package.ValidationError, ValueError)
    assert package.ValidationError is ValidationError
