from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.ext.asyncio import AsyncSession

from parking_api.core.timeutils import utc_now
from parking_api.schemas.discounts import DiscountStatsOut
from parking_api.services.discounts import admin_discount_stats


def _fmt_dt(dt: Optional[datetime]) -> str:
    if not dt:
        return ""
    return dt.isoformat(timespec="seconds").replace("+00:00", "Z")


def _build_pdf(
    *,
    title: str,
    subtitle_lines: list[str],
    table_header: list[str],
    table_rows: list[list[str]],
) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )

    styles = getSampleStyleSheet()
    story = []

    story.append(Paragraph(f"<b>{title}</b>", styles["Title"]))
    story.append(Spacer(1, 6))

    for line in subtitle_lines:
        story.append(Paragraph(line, styles["Normal"]))
    story.append(Spacer(1, 10))

    data = [table_header] + table_rows
    tbl = Table(data, repeatRows=1)

    tbl.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#111827")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 9),
                ("FONTSIZE", (0, 1), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.lightgrey]),
            ]
        )
    )

    story.append(tbl)
    doc.build(story)
    return buf.getvalue()


def render_discount_stats_pdf(stats: DiscountStatsOut) -> bytes:
    subtitle = [
        f"Code: <b>{stats.code}</b> (id={stats.id}) | Generated at: {_fmt_dt(utc_now())}",
        f"Times used: <b>{stats.times_used}</b> | Unique users: {stats.unique_users}",
        f"Total saved: <b>{stats.total_amount_saved:.2f}</b> | Average discount: {stats.average_discount_amount:.2f}",
        f"First used: {_fmt_dt(stats.first_used)} | Last used: {_fmt_dt(stats.last_used)}",
    ]

    header = ["Reservation", "User", "Discount", "Used at"]
    rows = [
        [
            u.reservation_id,
            f"{u.username} ({u.user_id})",
            f"{u.discount_amount:.2f}",
            _fmt_dt(u.used_at),
        ]
        for u in stats.recent_usages
    ]
    if not rows:
        rows = [["-", "-", "-", "-"]]

    return _build_pdf(
        title="Discount usage report",
        subtitle_lines=subtitle,
        table_header=header,
        table_rows=rows,
    )


async def generate_discount_stats_pdf(db: AsyncSession, *, discount_id: int) -> tuple[bytes, str]:
    stats = await admin_discount_stats(db, discount_id=discount_id)
    return render_discount_stats_pdf(stats), stats.code
