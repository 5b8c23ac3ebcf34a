import importlib.util
import itertools
import sys

import pytest

from openapi_codegen.validator_codegen.config import GeneratorConfig
from openapi_codegen.validator_codegen.main import generate_validators

_counter = itertools.count()


@pytest.fixture
def load_module(tmp_path):
    """Write generated source to tmp_path and import it as a real module."""
    loaded = []

    def load(source):
        name = f"generated_validators_{next(_counter)}"
        path = tmp_path / f"{name}.py"
        path.write_text(source, encoding="utf-8")
        spec = importlib.util.spec_from_file_location(name, path)
        module = importlib.util.module_from_spec(spec)
        # Deferred annotations are resolved against sys.modules
        sys.modules[name] = module
        loaded.append(name)
        spec.loader.exec_module(module)
        return module

    yield load
    for name in loaded:
        sys.modules.pop(name, None)


@pytest.fixture
def generate(load_module):
    """Generate and import validators for a document."""

    def run(document, config=None, **kwargs):
        return load_module(generate_validators(document, config or GeneratorConfig(), **kwargs))

    return run
