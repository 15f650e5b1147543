"""Pytest configuration and shared fixtures."""

import shutil
import tempfile
import textwrap
from pathlib import Path

import pytest

from orthrus.core.pipeline import scan_unit
from orthrus.models.program import SourceUnit
from orthrus.rules import load_rules

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp = tempfile.mkdtemp()
    yield Path(temp)
    shutil.rmtree(temp, ignore_errors=True)


@pytest.fixture(scope="session")
def rules():
    """The built-in rule catalogue."""
    return load_rules()


@pytest.fixture
def scan_source(rules):
    """Scan an in-memory snippet and return its UnitResult."""

    def _scan(code, language, name=None, rule_set=None, strict=False):
        suffix = {"python": "py", "javascript": "js", "java": "java"}[language]
        unit = SourceUnit.from_string(
            textwrap.dedent(code), language, name=name or f"snippet.{suffix}"
        )
        return scan_unit(unit, rule_set or rules, strict=strict)

    return _scan


@pytest.fixture
def vulnerable_app():
    """Directory with intentionally vulnerable sample code."""
    return FIXTURES_DIR / "vulnerable_app"


@pytest.fixture
def sample_python_file(temp_dir):
    """Create a Python file with one SQL injection."""
    code = '''
from flask import Flask, request

app = Flask(__name__)


@app.route("/users")
def search():
    name = request.args.get("name")
    query = "SELECT * FROM users WHERE name = '" + name + "'"
    cursor.execute(query)
'''
    file_path = temp_dir / "sample.py"
    file_path.write_text(code)
    return file_path


@pytest.fixture
def sample_javascript_file(temp_dir):
    """Create a JavaScript file with one SSRF."""
    code = '''
const express = require('express');
const app = express();

app.get('/proxy', function (req, res) {
    fetch(req.query.url).then(function (r) { res.send(r.status); });
});
'''
    file_path = temp_dir / "proxy.js"
    file_path.write_text(code)
    return file_path


@pytest.fixture
def clean_python_file(temp_dir):
    """Create a Python file with no findings."""
    code = '''
def add(a, b):
    return a + b


total = add(1, 2)
print(total)
'''
    file_path = temp_dir / "clean.py"
    file_path.write_text(code)
    return file_path
