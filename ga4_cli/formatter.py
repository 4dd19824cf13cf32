"""Render ReportResults as table, JSON, Markdown or CSV text."""
import json
import logging
import sys

from .errors import UnsupportedFormat
from .models import ReportResult

logger = logging.getLogger(__name__)

FORMATS = ("table", "json", "markdown", "csv")
NO_DATA = "No data found"
MIN_COLUMN_WIDTH = 10


def format_report(result: ReportResult, kind: str) -> str:
    """Render a report in one of FORMATS."""
    renderer = _RENDERERS.get(kind)
    if renderer is None:
        raise UnsupportedFormat(f"Unsupported format: {kind} (choose from {', '.join(FORMATS)})")
    return renderer(result)


def format_table(result: ReportResult) -> str:
    if not result.rows:
        return NO_DATA

    headers = result.headers
    rows = [row.cells() for row in result.rows]

    widths = [max(len(h), MIN_COLUMN_WIDTH) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def border(left, mid, right):
        return left + mid.join("─" * (w + 2) for w in widths) + right

    def line(cells):
        return "│" + "│".join(f" {cell.ljust(widths[i])} " for i, cell in enumerate(cells)) + "│"

    return "\n".join(
        [border("┌", "┬", "┐"), line(headers), border("├", "┼", "┤")]
        + [line(row) for row in rows]
        + [border("└", "┴", "┘")]
    )


def _row_keys(result: ReportResult):
    # A name used by both a dimension and a metric is kept twice, namespaced.
    shared = set(result.dimension_headers) & set(result.metric_headers)
    dim_keys = [f"dimension:{h}" if h in shared else h for h in result.dimension_headers]
    met_keys = [f"metric:{h}" if h in shared else h for h in result.metric_headers]
    return dim_keys, met_keys


def format_json(result: ReportResult) -> str:
    dim_keys, met_keys = _row_keys(result)
    data = []
    for row in result.rows:
        item = {}
        for key, value in zip(dim_keys, row.dimensions):
            item[key] = value
        for key, value in zip(met_keys, row.metrics):
            item[key] = value
        data.append(item)

    output = {
        "summary": {
            "totalRows": result.row_count,
            "dimensionHeaders": list(result.dimension_headers),
            "metricHeaders": list(result.metric_headers),
        },
        "data": data,
    }
    return json.dumps(output, indent=2, ensure_ascii=False)


def format_markdown(result: ReportResult) -> str:
    if not result.rows:
        return NO_DATA

    headers = result.headers
    lines = [
        "# GA4 Report Results",
        "",
        f"Total rows: {result.row_count}",
        "",
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines += ["| " + " | ".join(row.cells()) + " |" for row in result.rows]
    return "\n".join(lines)


def format_csv(result: ReportResult) -> str:
    """Comma-separated output. Only cells containing a comma are quoted."""
    lines = [",".join(result.headers)]
    for row in result.rows:
        lines.append(",".join(f'"{v}"' if "," in v else v for v in row.cells()))
    return "\n".join(lines)


_RENDERERS = {
    "table": format_table,
    "json": format_json,
    "markdown": format_markdown,
    "csv": format_csv,
}


def format_comparison(
    current: ReportResult,
    previous: ReportResult,
    kind: str,
    current_label: str = "Current",
    previous_label: str = "Previous",
) -> str:
    current_text = format_report(current, kind)
    previous_text = format_report(previous, kind)

    if kind == "markdown":
        return "\n".join([
            f"## {current_label}",
            current_text,
            "",
            f"## {previous_label}",
            previous_text,
        ])
    if kind == "json":
        return json.dumps(
            {
                current_label.lower(): json.loads(current_text),
                previous_label.lower(): json.loads(previous_text),
            },
            indent=2,
            ensure_ascii=False,
        )
    return "\n".join([
        f"=== {current_label} ===",
        current_text,
        "",
        f"=== {previous_label} ===",
        previous_text,
    ])


def save_to_file(content: str, path: str) -> bool:
    """Write rendered output to path. Returns False if the write failed."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        logger.error("Error saving file %s: %s", path, e)
        print(f"Error saving file: {e}", file=sys.stderr)
        return False
    print(f"Output saved to: {path}", file=sys.stderr)
    return True
