"""
Markdown report of outdated and vulnerable Python dependencies.

Meant to run from CI: each check shells out to pip / pip-audit and returns
an immutable value, `run_report` combines them, writes the report and flags
`has_updates` for the workflow.
"""
from __future__ import annotations

import datetime as dt
import json
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from weather_svg import config
from weather_svg.errors import OutputWriteError
from weather_svg.renderer import write_atomic
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="weather_svg/dependency_report")

Runner = Callable[[Sequence[str]], subprocess.CompletedProcess]

PIP = (sys.executable, "-m", "pip")
PIP_AUDIT = (sys.executable, "-m", "pip_audit")


@dataclass(frozen=True)
class OutdatedPackage:
    name: str
    current: str
    latest: str
    kind: str  # latest_filetype reported by pip: wheel / sdist


@dataclass(frozen=True)
class Vulnerability:
    package: str
    version: str
    advisory_id: str
    fix_versions: Tuple[str, ...]
    description: str


@dataclass(frozen=True)
class DependencyCheck:
    """Combined outcome of both checks."""
    outdated: Tuple[OutdatedPackage, ...] = ()
    vulnerabilities: Tuple[Vulnerability, ...] = ()

    @property
    def needs_update(self) -> bool:
        return bool(self.outdated or self.vulnerabilities)


def run_command(args: Sequence[str]) -> subprocess.CompletedProcess:
    """Run a command and capture its output; a non-zero exit is not an error here."""
    logger.debug("Running %s", " ".join(args))
    return subprocess.run(list(args), capture_output=True, text=True, check=False)


def check_outdated(runner: Runner = run_command) -> Tuple[OutdatedPackage, ...]:
    logger.info("🔍 Checking for outdated packages...")
    try:
        proc = runner([*PIP, "list", "--outdated", "--format=json"])
    except OSError as exc:
        logger.warning("pip could not be started: %s", exc)
        return ()
    if proc.returncode != 0:
        logger.warning("pip list --outdated exited with %s: %s", proc.returncode, (proc.stderr or "")[:200])
        return ()
    try:
        entries = json.loads(proc.stdout or "[]")
    except ValueError as exc:
        logger.warning("Could not parse pip output: %s", exc)
        return ()
    if not isinstance(entries, list):
        logger.warning("Unexpected pip output; expected a JSON list, got %s", type(entries).__name__)
        return ()
    return tuple(
        OutdatedPackage(
            name=entry["name"],
            current=entry.get("version", "?"),
            latest=entry.get("latest_version", "?"),
            kind=entry.get("latest_filetype", "dependencies"),
        )
        for entry in entries
        if isinstance(entry, dict) and entry.get("name")
    )


def check_vulnerabilities(runner: Runner = run_command) -> Tuple[Vulnerability, ...]:
    """
    Parse `pip-audit --format json`.

    pip-audit exits 1 when it finds vulnerabilities, so the exit code is
    ignored as long as stdout holds JSON. A missing tool yields no findings.
    """
    logger.info("🔒 Checking for security vulnerabilities...")
    try:
        proc = runner([*PIP_AUDIT, "--format", "json", "--progress-spinner", "off"])
    except OSError as exc:
        logger.warning("pip-audit could not be started: %s", exc)
        return ()
    try:
        document = json.loads(proc.stdout or "")
    except ValueError:
        logger.warning("pip-audit produced no JSON (exit %s): %s", proc.returncode, (proc.stderr or "")[:200])
        return ()

    # Older pip-audit releases emit a bare list of dependencies.
    dependencies = document.get("dependencies") if isinstance(document, dict) else document
    if not isinstance(dependencies, list):
        logger.warning("Unexpected pip-audit output; no dependency list found")
        return ()
    found: List[Vulnerability] = []
    for dep in dependencies:
        if not isinstance(dep, dict) or not isinstance(dep.get("vulns", []), list):
            logger.warning("Skipping malformed pip-audit entry: %.80r", dep)
            continue
        for vuln in dep.get("vulns", []):
            if not isinstance(vuln, dict):
                continue
            fixes = vuln.get("fix_versions") or []
            found.append(
                Vulnerability(
                    package=dep.get("name", "?"),
                    version=dep.get("version", "?"),
                    advisory_id=vuln.get("id", "?"),
                    fix_versions=tuple(fixes) if isinstance(fixes, list) else (),
                    description=vuln.get("description") or "",
                )
            )
    return tuple(found)


def _cell(text: str, limit: int = 80) -> str:
    text = " ".join(text.split()).replace("|", "\\|")
    return text if len(text) <= limit else text[: limit - 1] + "…"


def generate_report(check: DependencyCheck, generated_at: Optional[dt.datetime] = None) -> str:
    """Render the markdown report for a combined check."""
    generated_at = generated_at or dt.datetime.now(dt.timezone.utc)
    lines = ["# 🤖 Dependency Update Report", "", f"Generated on: {generated_at.isoformat()}", ""]

    if check.vulnerabilities:
        lines += [
            "## 🚨 Security Vulnerabilities",
            "",
            "| Package | Version | Advisory | Fixed in | Issue |",
            "|---------|---------|----------|----------|-------|",
        ]
        for vuln in check.vulnerabilities:
            fixed = ", ".join(vuln.fix_versions) or "no fix yet"
            issue = _cell(vuln.description) or "Security issue"
            lines.append(f"| {vuln.package} | {vuln.version} | **{vuln.advisory_id}** | {fixed} | {issue} |")
        lines.append("")

    if check.outdated:
        lines += [
            "## 📦 Package Updates",
            "",
            "| Package | Current | Latest | Type |",
            "|---------|---------|--------|------|",
        ]
        for pkg in check.outdated:
            lines.append(f"| {pkg.name} | {pkg.current} | {pkg.latest} | {pkg.kind} |")
        lines.append("")

    lines += ["## 💡 Recommendations", ""]
    if check.vulnerabilities:
        lines.append("- ⚠️ **High priority**: Fix security vulnerabilities immediately")
    lines += [
        "- ✅ Run tests after merging this PR",
        "- 📚 Check changelogs for breaking changes",
        "",
        "---",
        "*This PR was automatically created by Dependency Bot*",
        "",
    ]
    return "\n".join(lines)


def apply_updates(check: DependencyCheck, runner: Runner = run_command) -> bool:
    """Upgrade every outdated or vulnerable package in one pip call."""
    names = sorted({pkg.name for pkg in check.outdated} | {v.package for v in check.vulnerabilities})
    if not names:
        return True
    logger.info("📥 Updating packages: %s", ", ".join(names))
    try:
        proc = runner([*PIP, "install", "--upgrade", *names])
    except OSError as exc:
        logger.error("❌ Error updating packages: %s", exc)
        return False
    if proc.returncode != 0:
        logger.error("❌ Error updating packages (exit %s): %s", proc.returncode, (proc.stderr or "")[:500])
        return False
    return True


def write_github_output(path: str, **values: str) -> None:
    """Append key=value lines to the GitHub Actions step output file."""
    try:
        with open(path, "a", encoding="utf-8") as fh:
            for key, value in values.items():
                fh.write(f"{key}={value}\n")
    except OSError as exc:
        raise OutputWriteError(f"Cannot append to GITHUB_OUTPUT {path}: {exc}") from exc


def run_report(
    settings: Optional[config.Settings] = None,
    *,
    runner: Runner = run_command,
    now: Optional[dt.datetime] = None,
) -> bool:
    """Run both checks, write the report, optionally upgrade; return whether updates exist."""
    settings = settings or config.get_settings()
    check = DependencyCheck(
        outdated=check_outdated(runner),
        vulnerabilities=check_vulnerabilities(runner),
    )

    report_path = Path(settings.report_path)
    write_atomic(report_path, generate_report(check, now))
    logger.info("✅ Report generated: %s", report_path)

    if not check.needs_update:
        logger.info("✨ All dependencies are up to date!")
        return False

    logger.info(
        "📦 %d outdated package(s), %d vulnerability(ies)",
        len(check.outdated), len(check.vulnerabilities),
    )
    if settings.apply_updates:
        apply_updates(check, runner)
    if settings.github_output:
        write_github_output(settings.github_output, has_updates="true")
    return True
