"""Read-only scan for malformed rows in channel tables."""

from collections.abc import Collection
from datetime import datetime

from jinja2 import Template
from pydantic import BaseModel
from structlog.stdlib import BoundLogger

from slack_archiver.domain.entities.directory import SYSTEM_TABLES
from slack_archiver.domain.entities.row import TS_ESCAPE
from slack_archiver.domain.repositories.table_store import TableStore

ISSUE_MISSING_INDEX = "missing index (possibly an empty row)"
ISSUE_EMPTY_DATE = "empty createdAt"
ISSUE_BAD_DATE = "unparseable createdAt"
ISSUE_MISSING_TS = "missing slackTs"

REPORT_TEMPLATE = Template(
    "{% if not findings %}No problems found in the archived rows."
    "{% else %}Problems found in the archived rows:\n"
    "{% for f in findings %}\n[{{ f.table }}] row {{ f.row }}: {{ f.issues | join(' / ') }}"
    "{% endfor %}"
    "{% if truncated %}\n\n(stopped after {{ findings | length }} findings){% endif %}"
    "{% endif %}"
)


class IntegrityFinding(BaseModel):
    """Problems found in one row."""

    table: str
    row: int
    issues: list[str]


def parse_created_at(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.strip().replace("/", "-"))
    except ValueError:
        return None


def row_issues(values: dict[str, str]) -> list[str]:
    issues = []
    if not values.get("index", "").strip():
        issues.append(ISSUE_MISSING_INDEX)
    created_at = values.get("createdAt", "")
    if not created_at.strip():
        issues.append(ISSUE_EMPTY_DATE)
    elif parse_created_at(created_at) is None:
        issues.append(ISSUE_BAD_DATE)
    if not values.get("slackTs", "").strip().lstrip(TS_ESCAPE):
        issues.append(ISSUE_MISSING_TS)
    return issues


class IntegrityScanner:
    """Flags rows with a missing index, a bad date or no source timestamp.

    Args:
        store: Table store.
        max_findings: Scan stops once this many rows were flagged.
        logger: Structured logger.
        excluded_tables: Non-channel tables to skip besides the system tables.
    """

    def __init__(
        self,
        store: TableStore,
        max_findings: int,
        logger: BoundLogger,
        excluded_tables: Collection[str] = (),
    ) -> None:
        self._store = store
        self._max_findings = max_findings
        self._logger = logger
        self._excluded = SYSTEM_TABLES | set(excluded_tables)

    async def scan(self) -> list[IntegrityFinding]:
        findings: list[IntegrityFinding] = []
        for table in await self._store.list_tables():
            if table in self._excluded:
                continue
            for row in await self._store.read_rows(table):
                issues = row_issues(row.values)
                if issues:
                    findings.append(
                        IntegrityFinding(table=table, row=row.number, issues=issues)
                    )
                if len(findings) >= self._max_findings:
                    self._logger.info("Integrity scan truncated", findings=len(findings))
                    return findings
        self._logger.info("Integrity scan finished", findings=len(findings))
        return findings

    def render(self, findings: list[IntegrityFinding]) -> str:
        return REPORT_TEMPLATE.render(
            findings=findings, truncated=len(findings) >= self._max_findings
        )

    async def report(self) -> str:
        return self.render(await self.scan())
