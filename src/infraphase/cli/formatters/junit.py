"""
JUnit XML output formatter for infraphase reports.

One testsuite per phase and one testcase per resource task, so CI systems
(Jenkins, GitHub Actions, GitLab CI, Azure DevOps) can show provisioning runs
like test runs. Secret writes get their own ``secrets`` testsuite.
"""

from __future__ import annotations

from xml.etree import ElementTree as ET

from infraphase.orchestration.models import TaskStatus
from infraphase.orchestration.results import PlanReport, SecretRow, TaskRow


def format_junit(report: PlanReport) -> str:
    """
    Format a plan report as JUnit XML.

    Output structure:
    <testsuites name="shop-infra" tests="5" failures="1" skipped="2">
      <testsuite name="data" tests="3" failures="1" skipped="0">
        <testcase name="redis" classname="shop-infra.data">
          <failure message="..." type="ProvisioningTimeoutError">...</failure>
        </testcase>
      </testsuite>
    </testsuites>
    """
    phases: dict[str, list[TaskRow]] = {}
    for row in report.tasks:
        phases.setdefault(row.phase, []).append(row)

    testsuites = ET.Element("testsuites")
    testsuites.set("name", report.plan_name)
    testsuites.set("tests", str(len(report.tasks) + len(report.secrets)))
    testsuites.set(
        "failures",
        str(
            report.count(TaskStatus.FAILED)
            + sum(1 for s in report.secrets if s.status == "failed")
        ),
    )
    testsuites.set("errors", "0")
    testsuites.set("time", f"{report.duration_seconds:.3f}")

    for phase, rows in phases.items():
        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("name", phase)
        testsuite.set("tests", str(len(rows)))
        testsuite.set("failures", str(sum(1 for r in rows if r.status == TaskStatus.FAILED)))
        testsuite.set("errors", "0")
        testsuite.set("skipped", str(sum(1 for r in rows if r.status == TaskStatus.PENDING)))
        testsuite.set("time", f"{sum(r.duration_seconds for r in rows):.3f}")
        for row in rows:
            _add_task_testcase(testsuite, row, report.plan_name)

    if report.secrets:
        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("name", "secrets")
        testsuite.set("tests", str(len(report.secrets)))
        testsuite.set("failures", str(sum(1 for s in report.secrets if s.status == "failed")))
        testsuite.set("errors", "0")
        testsuite.set("skipped", "0")
        for secret in report.secrets:
            _add_secret_testcase(testsuite, secret, report.plan_name)

    return _element_to_string(testsuites)


def _add_task_testcase(testsuite: ET.Element, row: TaskRow, plan_name: str) -> None:
    """Add a testcase element for a task row."""
    testcase = ET.SubElement(testsuite, "testcase")
    testcase.set("name", row.task_id)
    testcase.set("classname", f"{plan_name}.{row.phase}")
    testcase.set("time", f"{row.duration_seconds:.3f}")

    if row.status == TaskStatus.FAILED:
        error_type, _, message = (row.error or "Failed").partition(": ")
        failure = ET.SubElement(testcase, "failure")
        failure.set("message", message or error_type)
        failure.set("type", error_type if message else "ProvisioningError")
        failure.text = _format_details(row)
    elif row.status == TaskStatus.PENDING:
        skipped = ET.SubElement(testcase, "skipped")
        skipped.set("message", "Not attempted: an earlier phase failed")

    if row.log_ref:
        system_out = ET.SubElement(testcase, "system-out")
        system_out.text = f"log: {row.log_ref}"


def _add_secret_testcase(testsuite: ET.Element, secret: SecretRow, plan_name: str) -> None:
    testcase = ET.SubElement(testsuite, "testcase")
    testcase.set("name", secret.name)
    testcase.set("classname", f"{plan_name}.secrets.{secret.task_id}")
    if secret.status == "failed":
        failure = ET.SubElement(testcase, "failure")
        failure.set("message", secret.error or "Secret write failed")
        failure.set("type", "SecretPropagationError")


def _format_details(row: TaskRow) -> str:
    """Format task details for the failure body."""
    lines = [row.error or "", ""]
    lines.append(f"resource: {row.resource}")
    lines.append(f"attempts: {row.attempts}")
    lines.append(f"duration: {row.duration_seconds:.3f}s")
    return "\n".join(lines)


def _element_to_string(element: ET.Element) -> str:
    """Convert ElementTree element to formatted XML string."""
    xml_str = ET.tostring(element, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{xml_str}'
