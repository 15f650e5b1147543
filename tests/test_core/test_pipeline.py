"""Tests for the per-unit scan pipeline."""

from dataclasses import replace

import pytest

from orthrus.analysis.path_evaluator import score
from orthrus.core.pipeline import scan_unit
from orthrus.models.base import Severity
from orthrus.models.program import SourceUnit
from orthrus.rules.ruleset import RuleSet


def _by_rule(result, rule_id):
    return [f for f in result.findings if f.rule_id == rule_id]


PYTHON_SQLI = '''
from flask import Flask, request

app = Flask(__name__)


def search():
    name = request.args.get("name")
    query = "SELECT * FROM users WHERE name = '" + name + "'"
    cursor.execute(query)
'''


class TestSQLInjection:
    """Test SQL injection detection across languages."""

    def test_python_concatenated_query(self, scan_source):
        """Should report request input concatenated into cursor.execute."""
        result = scan_source(PYTHON_SQLI, "python")

        assert result.error is None
        findings = _by_rule(result, "SQLI")
        assert len(findings) == 1

        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.cwe == "CWE-89"
        assert finding.source.location.line == 8
        assert finding.sink.location.line == 10
        assert finding.source.step_type == "source"
        assert finding.sink.step_type == "sink"
        assert all(step.step_type == "propagation" for step in finding.path[1:-1])
        assert finding.interprocedural_hops == 0
        assert finding.confidence == pytest.approx(score(5, 0))
        assert finding.confidence_level == Severity.CRITICAL

    def test_python_parameterized_query(self, scan_source):
        """Should not report input passed as a bind parameter."""
        code = '''
        from flask import request

        def search():
            name = request.args.get("name")
            cursor.execute("SELECT * FROM users WHERE name = %s", (name,))
        '''
        result = scan_source(code, "python")

        assert result.error is None
        assert _by_rule(result, "SQLI") == []

    def test_python_reassigned_inside_checked_block(self, scan_source):
        """Should keep input assigned inside a block whose condition checks the same name."""
        code = '''
        from flask import request

        q = "SELECT 1"
        if q.startswith("SELECT"):
            q = "SELECT * FROM users WHERE id = " + request.args["id"]
        cursor.execute(q)
        '''
        result = scan_source(code, "python")

        assert result.error is None
        findings = _by_rule(result, "SQLI")
        assert len(findings) == 1
        assert findings[0].sink.location.line == 7

    def test_python_numeric_cast_blocks(self, scan_source):
        """Should not report input converted with int()."""
        code = '''
        from flask import request

        def lookup():
            user_id = int(request.args.get("id"))
            cursor.execute("SELECT * FROM users WHERE id = " + str(user_id))
        '''
        result = scan_source(code, "python")

        assert _by_rule(result, "SQLI") == []
        assert result.sanitizers_found >= 1

    def test_java_request_param(self, scan_source):
        """Should report a @RequestParam concatenated into executeQuery."""
        code = '''
        @RestController
        public class UserController {
            @GetMapping("/users")
            public String search(@RequestParam String name) throws Exception {
                Statement stmt = connection.createStatement();
                ResultSet rs = stmt.executeQuery("SELECT * FROM users WHERE name = '" + name + "'");
                return "ok";
            }
        }
        '''
        result = scan_source(code, "java")

        assert result.error is None
        findings = _by_rule(result, "SQLI")
        assert len(findings) == 1
        assert findings[0].source.location.line == 5
        assert findings[0].sink.location.line == 7
        assert findings[0].confidence_level == Severity.CRITICAL

    def test_java_safe_variants(self, scan_source):
        """Should not report parsed integers or prepared statements."""
        code = '''
        public class UserController {
            public String byId(@RequestParam String id) throws Exception {
                Statement stmt = connection.createStatement();
                stmt.executeQuery(String.valueOf(Integer.parseInt(id)));
                return "ok";
            }

            public String byName(@RequestParam String name) throws Exception {
                PreparedStatement ps = connection.prepareStatement("SELECT * FROM users WHERE name = ?");
                ps.setString(1, name);
                ps.executeQuery();
                return "ok";
            }
        }
        '''
        result = scan_source(code, "java")

        assert result.error is None
        assert _by_rule(result, "SQLI") == []

    def test_javascript_callback_handler(self, scan_source):
        """Should report req.query flowing into db.query inside a route callback."""
        code = '''
        app.get('/users', function (req, res) {
            const name = req.query.name;
            db.query("SELECT * FROM users WHERE name = '" + name + "'", function (err, rows) {
                res.json(rows);
            });
        });
        '''
        result = scan_source(code, "javascript")

        assert result.error is None
        findings = _by_rule(result, "SQLI")
        assert len(findings) == 1
        assert findings[0].sink.location.line == 4


class TestSSRF:
    """Test server-side request forgery detection."""

    def test_python_requests_get(self, scan_source):
        """Should report a request argument fetched with requests.get."""
        code = '''
        import requests
        from flask import request

        @app.route("/fetch")
        def fetch():
            url = request.args.get("url")
            return requests.get(url).text
        '''
        result = scan_source(code, "python")

        findings = _by_rule(result, "SSRF")
        assert len(findings) == 1
        assert findings[0].severity == Severity.HIGH

    def test_javascript_fetch_direct(self, scan_source):
        """Should report req.query passed straight to fetch with full confidence."""
        code = '''
        app.get('/proxy', function (req, res) {
            fetch(req.query.url);
        });
        '''
        result = scan_source(code, "javascript")

        findings = _by_rule(result, "SSRF")
        assert len(findings) == 1
        assert findings[0].confidence == pytest.approx(1.0)

    def test_java_rest_template(self, scan_source):
        """Should report a @RequestParam URL fetched with RestTemplate."""
        code = '''
        public class ProxyController {
            public String proxy(@RequestParam String url) {
                return restTemplate.getForObject(url, String.class);
            }
        }
        '''
        result = scan_source(code, "java")

        assert len(_by_rule(result, "SSRF")) == 1

    def test_python_through_helper_function(self, scan_source):
        """Should follow taint into a helper and mark the call boundary."""
        code = '''
        import requests
        from flask import request

        def fetch_remote(target):
            return requests.get(target)

        def proxy():
            return fetch_remote(request.args["url"])
        '''
        result = scan_source(code, "python")

        findings = _by_rule(result, "SSRF")
        assert len(findings) == 1
        finding = findings[0]
        assert finding.interprocedural_hops == 1
        assert any(step.interprocedural for step in finding.path)
        assert finding.confidence < 1.0
        assert finding.sink.location.line == 6


class TestPathTraversal:
    """Test path traversal detection and guard handling."""

    def test_python_unchecked_name(self, scan_source):
        """Should report a request parameter joined into an opened path."""
        code = '''
        import os
        from flask import request

        BASE = "/srv/files"

        def download():
            name = request.args.get("name")
            return open(os.path.join(BASE, name)).read()
        '''
        result = scan_source(code, "python")

        assert len(_by_rule(result, "PATH_TRAVERSAL")) == 1

    def test_python_allowlist_guard(self, scan_source):
        """Should not report when a negated allow-list check exits early."""
        code = r'''
        import os
        import re
        from flask import abort, request

        BASE = "/srv/files"

        def download():
            name = request.args.get("name")
            if not re.fullmatch(r"[a-zA-Z0-9_\-]+\.txt", name):
                abort(400)
            return open(os.path.join(BASE, name)).read()
        '''
        result = scan_source(code, "python")

        assert result.error is None
        assert _by_rule(result, "PATH_TRAVERSAL") == []

    def test_java_allowlist_guard(self, scan_source):
        """Should not report when String.matches guards the file name."""
        code = r'''
        public class FileController {
            private static final String BASE_DIR = "/srv/files";

            public byte[] download(@RequestParam String name) throws Exception {
                if (!name.matches("[a-zA-Z0-9_\\-]+\\.txt")) {
                    throw new IllegalArgumentException("bad name");
                }
                File file = new File(BASE_DIR, name);
                return Files.readAllBytes(file.toPath());
            }
        }
        '''
        result = scan_source(code, "java")

        assert result.error is None
        assert _by_rule(result, "PATH_TRAVERSAL") == []

    def test_java_unchecked_name(self, scan_source):
        """Should report the file constructor and the read without a guard."""
        code = '''
        public class FileController {
            private static final String BASE_DIR = "/srv/files";

            public byte[] download(@RequestParam String name) throws Exception {
                File file = new File(BASE_DIR, name);
                return Files.readAllBytes(file.toPath());
            }
        }
        '''
        result = scan_source(code, "java")

        assert len(_by_rule(result, "PATH_TRAVERSAL")) == 2

    def test_javascript_regex_test_guard(self, scan_source):
        """Should not report when a regex test returns early."""
        code = r'''
        app.get('/file', function (req, res) {
            const name = req.query.name;
            if (!/^[a-zA-Z0-9_\-]+\.txt$/.test(name)) {
                return res.status(400).send('bad name');
            }
            fs.readFile(path.join(BASE, name), (err, data) => res.send(data));
        });
        '''
        result = scan_source(code, "javascript")

        assert result.error is None
        assert _by_rule(result, "PATH_TRAVERSAL") == []


class TestPipelineBehaviour:
    """Test properties that hold for any unit."""

    def test_recursive_helper_terminates(self, scan_source):
        """Should terminate on recursion and report the flow once."""
        code = '''
        from flask import request

        def walk(path, depth):
            if depth > 3:
                return path
            return walk(path + "/..", depth + 1)

        @app.route("/read")
        def read():
            target = walk(request.args.get("p"), 0)
            return open(target).read()
        '''
        result = scan_source(code, "python")

        assert result.error is None
        assert len(_by_rule(result, "PATH_TRAVERSAL")) == 1

    def test_repeated_scans_are_identical(self, scan_source):
        """Should produce identical findings for identical input."""
        first = scan_source(PYTHON_SQLI, "python")
        second = scan_source(PYTHON_SQLI, "python")

        assert [f.to_dict() for f in first.findings] == [f.to_dict() for f in second.findings]
        assert [f.id for f in first.findings] == [f.id for f in second.findings]

    def test_clean_code_has_no_findings(self, scan_source):
        """Should return no findings for code without sources."""
        code = '''
        def add(a, b):
            return a + b

        print(add(1, 2))
        '''
        result = scan_source(code, "python")

        assert result.error is None
        assert result.findings == []
        assert result.sources_found == 0

    def test_counts_lines_and_tags(self, scan_source):
        """Should report line count and tagged node counts."""
        result = scan_source(PYTHON_SQLI, "python")

        assert result.language == "python"
        assert result.lines == len(PYTHON_SQLI.splitlines())
        assert result.sources_found >= 1
        assert result.sinks_found >= 1
        assert result.duration_ms >= 0

    def test_syntax_error_is_recorded(self, scan_source):
        """Should record a parse error instead of raising."""
        result = scan_source("def broken(:\n    pass\n", "python", name="broken.py")

        assert result.findings == []
        assert result.error is not None
        assert result.error.error_type == "ParseError"
        assert result.error.phase == "parse"
        assert result.error.file_path == "broken.py"
        assert result.error.line is not None

    def test_unsupported_language_is_recorded(self, rules):
        """Should record an unsupported language as a parse error."""
        unit = SourceUnit.from_string("puts 'hi'", "ruby", name="script.rb")
        result = scan_unit(unit, rules)

        assert result.error is not None
        assert "Unsupported language" in result.error.message

    def test_rule_restricted_to_other_language(self, scan_source, rules):
        """Should not apply a rule whose languages exclude the unit's language."""
        sqli_only = rules.without([rule_id for rule_id in rules.ids if rule_id != "SQLI"])
        result = scan_source(PYTHON_SQLI, "python", rule_set=sqli_only)
        assert len(result.findings) == 1

        restricted = RuleSet([replace(rules.get("SQLI"), languages=("java",))])
        result = scan_source(PYTHON_SQLI, "python", rule_set=restricted)
        assert result.findings == []
