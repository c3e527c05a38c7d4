"""Тесты Report Formatter."""

import io
import json

from rich.console import Console

from perfbudget.core.assertions import AssertionOutcome, AssertionResult, AssertionRule, evaluate
from perfbudget.core.models import parse_report
from perfbudget.core.report import AssertionReporter, format_value, render_failure, write_results_json
from perfbudget.core.types import Severity

from conftest import make_lhr


def make_result(audit_id="works-offline", passed=False, level=Severity.ERROR, **kwargs):
    defaults = dict(
        audit_id=audit_id,
        audit_property=(),
        assertion="minScore",
        operator=">=",
        expected=1.0,
        actual=0.0,
        values=(0.0, 0.0),
        passed=passed,
        level=level,
        url="chrome://version",
    )
    defaults.update(kwargs)
    return AssertionResult(**defaults)


def render(outcome):
    out, err = io.StringIO(), io.StringIO()
    reporter = AssertionReporter(
        Console(file=out, color_system=None, highlight=False, width=120),
        Console(file=err, color_system=None, highlight=False, width=120),
    )
    code = reporter.render(outcome)
    return code, out.getvalue(), err.getvalue()


def test_format_value():
    assert format_value(1.0) == "1"
    assert format_value(0.25) == "0.25"
    assert format_value(1234.5678) == "1234.568"


def test_error_failure_goes_to_stderr():
    code, out, err = render(AssertionOutcome(results=(make_result(),), run_count=2))

    assert code == 1
    assert out == "Checking assertions against 2 run(s)\n"
    assert "✘ works-offline failure for minScore assertion" in err
    assert "      expected: >=1" in err
    assert "         found: 0" in err
    assert "    all values: 0, 0" in err
    assert err.rstrip().endswith("Assertion failed. Exiting with status code 1.")


def test_passing_results_are_silent():
    code, out, err = render(AssertionOutcome(results=(make_result(passed=True, actual=1.0),), run_count=2))

    assert code == 0
    assert err == ""
    assert out == "Checking assertions against 2 run(s)\n"


def test_warn_failures_stay_off_the_failure_stream():
    code, out, err = render(AssertionOutcome(results=(make_result(level=Severity.WARN),), run_count=1))

    assert code == 0
    assert err == ""
    assert "⚠ works-offline failure for minScore assertion" in out


def test_one_block_per_failure_in_evaluation_order():
    results = (
        make_result(
            "performance-budget", audit_property=("document", "size"), assertion="maxNumericValue",
            operator="<=", expected=1024.0, actual=4096.0, values=(4096.0, 4096.0),
        ),
        make_result("speed-index", passed=True),
        make_result(
            "first-contentful-paint", assertion="auditRan", operator="==",
        ),
    )
    _, _, err = render(AssertionOutcome(results=results, run_count=2))

    assert err.count("failure for") == 2
    first = err.index("performance-budget.document.size failure for maxNumericValue assertion")
    second = err.index("first-contentful-paint failure for auditRan assertion")
    assert first < second
    assert "found: 4096" in err
    assert "speed-index" not in err


def test_audit_that_never_ran_renders_as_audit_ran_failure():
    runs = [parse_report(make_lhr("chrome://version", {})) for _ in range(2)]
    outcome = evaluate([AssertionRule("interactive", "maxNumericValue", 5000, Severity.ERROR)], runs)

    code, out, err = render(outcome)

    assert code == 1
    assert "✘ interactive failure for auditRan assertion" in err
    assert "      expected: ==1" in err
    assert "         found: 0" in err
    assert "    all values: 0, 0" in err
    assert "<=5000" not in err


def test_render_failure_escapes_markup():
    block = render_failure(make_result("[weird]"))
    assert "\\[weird]" in block


def test_urls_are_shown_for_multiple_groups():
    results = (make_result(url="http://a/"), make_result(url="http://b/"))
    _, _, err = render(AssertionOutcome(results=results, run_count=2, urls=("http://a/", "http://b/")))
    assert "http://a/" in err
    assert "http://b/" in err


def test_write_results_json(tmp_path):
    path = write_results_json(AssertionOutcome(results=(make_result(),), run_count=2), tmp_path / "out")
    data = json.loads(path.read_text())
    assert data[0]["auditId"] == "works-offline"
    assert data[0]["passed"] is False
    assert data[0]["level"] == "error"
