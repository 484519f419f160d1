"""CSV rendering of the post scope for the dashboard export button."""

import csv
import io
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from blog_analytics.services.analytics import ExportRow, get_export_rows
from blog_analytics.services.filters import AnalyticsFilter

CSV_HEADER = ("title", "category", "date", "views", "comments", "status")
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def format_csv_row(fields: Iterable) -> str:
    """One RFC 4180 record terminated by a bare ``\\n``."""
    buffer = io.StringIO()
    # A "\r\n" terminator makes the writer quote fields holding either character.
    csv.writer(buffer, lineterminator="\r\n").writerow(fields)
    return buffer.getvalue()[:-2] + "\n"


def render_csv(rows: Iterable[ExportRow]) -> str:
    lines = [format_csv_row(CSV_HEADER)]
    for row in rows:
        lines.append(
            format_csv_row(
                (
                    row.title,
                    row.category,
                    row.created_at.date().isoformat(),
                    row.views,
                    row.comments,
                    row.status,
                )
            )
        )
    return "".join(lines)


async def export_csv(db: AsyncSession, flt: AnalyticsFilter) -> str:
    return render_csv(await get_export_rows(db, flt))


def csv_filename(flt: AnalyticsFilter) -> str:
    return f"analytics-{flt.start.date().isoformat()}-{flt.end.date().isoformat()}.csv"
