"""Server-rendered HTML for the tally board."""

from html import escape

from ref_tally.domain.categories import question_categories
from ref_tally.services.board import BoardView

PAGE_TITLE = "Reference Question Tally"
REPORT_TITLE = "Reference Question Summary Report"


def render_tally_page(view: BoardView) -> str:
    """Render the full page: counting buttons, export controls and report."""
    return _PAGE_TEMPLATE.format(
        title=PAGE_TITLE,
        style=_BASE_STYLE,
        controls=render_controls(view),
        report=render_report_block(view),
        script=_LIVE_SCRIPT,
    )


def render_print_page(view: BoardView) -> str:
    """Render the report block alone and open the print dialog."""
    return _PAGE_TEMPLATE.format(
        title=REPORT_TITLE,
        style=_BASE_STYLE + _PRINT_STYLE,
        controls="",
        report=render_report_block(view),
        script=_PRINT_SCRIPT,
    )


def render_blocking_page(message: str) -> str:
    """Render the fatal start-up message."""
    return _PAGE_TEMPLATE.format(
        title=PAGE_TITLE,
        style=_BASE_STYLE,
        controls=f'<p class="blocking">{escape(message)}</p>',
        report="",
        script="",
    )


def render_controls(view: BoardView) -> str:
    """Render the header, error banner, category buttons and report actions."""
    if view.printing:
        return ""
    parts = [
        "<header>",
        f"<h1>{PAGE_TITLE}</h1>",
        f"<p>Live count for {view.day.isoformat()}. User ID: "
        f"<code>{escape(view.actor_id)}</code></p>",
        f'<p id="error" class="error"{"" if view.error else " hidden"}>'
        f"{escape(view.error or '')}</p>",
        "</header>",
        '<div class="buttons">',
    ]
    for category in question_categories():
        parts.append(
            f'<button class="tally" data-category="{escape(category.id)}" '
            f'title="{escape(category.description)} {escape(category.example)}">'
            f'<span class="count" data-count="{escape(category.id)}">'
            f"{view.daily_counts.get(category.id, 0)}</span>"
            f'<span class="name">{escape(category.name)}</span></button>'
        )
    parts.append("</div>")
    parts.append(
        '<div class="actions">'
        '<a href="/api/report/export.csv">Export CSV</a>'
        '<a href="/report/print" target="_blank">Print Report</a>'
        "</div>"
    )
    return "\n".join(parts)


def render_report_block(view: BoardView) -> str:
    """Render daily totals, weekly aggregation and the day-by-day table."""
    categories = question_categories()
    parts = [
        f"<h2>{REPORT_TITLE}</h2>",
        f"<h3>Daily Totals: {view.day.isoformat()}</h3>",
    ]
    parts.append('<div class="daily">')
    for category in categories:
        parts.append(
            f"<div><p>{escape(category.name)}</p>"
            f"<p class=\"big\">{view.daily_counts.get(category.id, 0)}</p></div>"
        )
    parts.append("</div>")

    days = len(view.table.rows) if view.table else 0
    period = (
        f"{view.period[0].isoformat()} to {view.period[1].isoformat()}"
        if view.period
        else "No data available"
    )
    parts.append("<h3>Weekly Aggregation</h3>")
    parts.append(
        f"<p>Grand Total (Last {days} Days): "
        f'<strong class="big">{view.grand_total}</strong></p>'
        f"<p>Report Period: {period}</p>"
    )

    parts.append("<h3>Day-by-Day Breakdown</h3>")
    if view.table is None:
        parts.append("<p>No data available</p>")
        return "\n".join(parts)
    header = "".join(f"<th>{escape(name)}</th>" for name in view.table.headers)
    parts.append(f"<table><thead><tr>{header}</tr></thead><tbody>")
    for row in [*view.table.rows, view.table.totals]:
        cells = "".join(f"<td>{count}</td>" for count in row.counts)
        css = ' class="totals"' if row is view.table.totals else ""
        parts.append(
            f"<tr{css}><td>{escape(row.label)}</td>{cells}"
            f'<td class="sum">{row.total}</td></tr>'
        )
    parts.append("</tbody></table>")
    return "\n".join(parts)


_PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{title}</title>
    <style>{style}</style>
  </head>
  <body>
    <main id="controls">{controls}</main>
    <section id="report">{report}</section>
    {script}
  </body>
</html>
"""

_BASE_STYLE = """
      body { font-family: Inter, ui-sans-serif, system-ui, sans-serif; margin: 2rem; }
      main, section { max-width: 56rem; margin: 0 auto 2rem; }
      .buttons { display: grid; grid-template-columns: 1fr 1fr; gap: 1rem; }
      .tally { padding: 1rem; border-radius: 0.75rem; border: 0; cursor: pointer; }
      .tally .count { display: block; font-size: 2.5rem; font-weight: 700; }
      .actions { display: flex; gap: 1rem; justify-content: center; margin: 1.5rem 0; }
      .error { background: #fee2e2; color: #b91c1c; padding: 0.5rem; }
      .blocking { font-size: 1.25rem; text-align: center; margin-top: 30vh; }
      .daily { display: grid; grid-template-columns: 1fr 1fr; gap: 1rem; }
      .big { font-size: 1.75rem; font-weight: 800; }
      table { border-collapse: collapse; width: 100%; }
      th, td { padding: 0.5rem; text-align: right; }
      th:first-child, td:first-child { text-align: left; }
      tr.totals { font-weight: 700; background: #eef2ff; }
"""

_PRINT_STYLE = """
      @media print {
        body { background: #fff; margin: 0; }
        section { max-width: none; margin: 0; }
        h2, h3 { color: #000; text-align: center; }
        th, td { border: 1px solid #ddd; padding: 8px; }
      }
"""

_LIVE_SCRIPT = """<script>
      const errorBox = () => document.getElementById('error');
      function showError(message) {
        const box = errorBox();
        if (!box) return;
        box.textContent = message || '';
        box.hidden = !message;
      }
      document.querySelectorAll('button.tally').forEach((button) => {
        button.addEventListener('click', async () => {
          const res = await fetch('/api/tally/' + button.dataset.category, {
            method: 'POST'
          });
          const data = await res.json();
          showError(data.error);
        });
      });
      const stream = new EventSource('/api/board/stream');
      stream.onmessage = (event) => {
        const data = JSON.parse(event.data);
        for (const [id, count] of Object.entries(data.counts)) {
          const el = document.querySelector('[data-count="' + id + '"]');
          if (el) el.textContent = count;
        }
        document.getElementById('report').innerHTML = data.report_html;
        showError(data.error);
      };
      stream.onerror = () => showError('Could not load real-time data.');
    </script>"""

_PRINT_SCRIPT = (
    "<script>window.addEventListener('load', () => window.print());</script>"
)
