"""
Console report rendering

Summary as a banner-per-category text block or as a table; detail as a
table with the query text decompressed.
"""

from typing import List, Sequence, Optional, Any
from datetime import datetime

from qdsclean.models.cleanup_models import ReportRow, QueryDetailRow
from qdsclean.services.size_estimator import decompress_query_text

BANNER_RULE = "*" * 34

SUMMARY_COLUMNS = (
    "QueryType", "QueryCount", "PlanCount", "QueryTextKBs",
    "PlanXMLKBs", "RunStatsKBs", "WaitStatsKBs",
)

DETAIL_COLUMNS = (
    "QueryType", "ObjectName", "QueryID", "LastExecutionTime",
    "ExecutionCount", "QueryText",
)

# Console width of the QueryText column; sinks keep the full text
MAX_TEXT_WIDTH = 80


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


def _one_line(text: Optional[str], width: int = MAX_TEXT_WIDTH) -> Optional[str]:
    if text is None:
        return None
    text = " ".join(text.split())
    if len(text) > width:
        return text[:width - 3] + "..."
    return text


def format_table(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Plain fixed-width grid, header underlined with dashes"""
    cells = [[_cell(v) for v in row] for row in rows]
    widths = [len(c) for c in columns]
    for row in cells:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))

    lines = [
        " ".join(c.ljust(widths[i]) for i, c in enumerate(columns)).rstrip(),
        " ".join("-" * w for w in widths),
    ]
    for row in cells:
        lines.append(" ".join(v.ljust(widths[i]) for i, v in enumerate(row)).rstrip())
    lines.append("")
    lines.append(f"({len(cells)} row{'s' if len(cells) != 1 else ''} affected)")
    return "\n".join(lines)


def format_summary_table(rows: List[ReportRow]) -> str:
    return format_table(SUMMARY_COLUMNS, [
        (
            r.category.value, r.query_count, r.plan_count, r.query_text_kb,
            r.plan_xml_kb, r.runtime_stats_kb, r.wait_stats_kb,
        )
        for r in rows
    ])


def format_summary_text(rows: List[ReportRow]) -> str:
    """One banner block per category"""
    blocks: List[str] = []
    for r in rows:
        blocks.append("\n".join([
            "",
            BANNER_RULE,
            f"*{r.category.title.center(32)}*",
            BANNER_RULE,
            f"# of Queries : {r.query_count}",
            f"# of Plans : {r.plan_count}",
            f"KBs of query texts : {r.query_text_kb}",
            f"KBs of execution plans : {r.plan_xml_kb}",
            f"KBs of runtime stats : {r.runtime_stats_kb}",
            f"KBs of wait stats : {r.wait_stats_kb}",
            "",
        ]))
    return "\n".join(blocks)


def format_details_table(rows: List[QueryDetailRow]) -> str:
    return format_table(DETAIL_COLUMNS, [
        (
            r.category.value, r.object_name, r.query_id, r.last_execution_time,
            r.execution_count, _one_line(decompress_query_text(r.query_text)),
        )
        for r in rows
    ])
