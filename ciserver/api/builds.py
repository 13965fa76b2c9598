"""
Build history pages.
GET /builds lists persisted builds (newest first); GET /builds?file=<name>
shows one build file. Pages are public.
"""
import html
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Query
from fastapi.responses import HTMLResponse

from ciserver.core.history_store import HistoryNotFoundError, history_store
from ciserver.core.result import BUILD_EXCEPTION_PREFIX
from ciserver.schemas.ci import HistoryRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["builds"])


def format_datetime(dt: Optional[datetime]) -> str:
    """Format datetime for display."""
    if not dt:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_size(size_bytes: int) -> str:
    """Format a file size for display."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def status_badge(record: HistoryRecord) -> str:
    """Badge HTML for a build outcome."""
    if record.build_successful and record.tests_successful:
        label, classes = "passed", "bg-green-100 text-green-800"
    elif record.error_message and record.error_message.startswith(BUILD_EXCEPTION_PREFIX):
        label, classes = "error", "bg-yellow-100 text-yellow-800"
    else:
        label, classes = "failed", "bg-red-100 text-red-800"
    return f'<span class="px-2 py-1 rounded text-xs font-medium {classes}">{label}</span>'


# Base HTML template with Tailwind CSS
BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en" class="h-full bg-gray-50">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title} - CI Server</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <style>
        .code-block {{ font-family: ui-monospace, monospace; font-size: 0.8rem; }}
    </style>
</head>
<body class="h-full">
    <div class="min-h-full">
        <nav class="bg-white shadow-sm border-b border-gray-200">
            <div class="mx-auto max-w-7xl px-4 sm:px-6 lg:px-8">
                <div class="flex h-16 justify-between items-center">
                    <a href="/builds" class="text-xl font-bold text-gray-900">CI Server</a>
                    <a href="/builds" class="text-gray-600 hover:text-gray-900 px-3 py-2 rounded-md text-sm font-medium">Build History</a>
                </div>
            </div>
        </nav>

        <main class="mx-auto max-w-7xl px-4 sm:px-6 lg:px-8 py-8">
            {content}
        </main>

        <footer class="bg-white border-t border-gray-200 mt-auto">
            <div class="mx-auto max-w-7xl px-4 sm:px-6 lg:px-8 py-4">
                <p class="text-center text-sm text-gray-500">
                    CI Server • <a href="/health" class="text-indigo-600 hover:text-indigo-800">Health Check</a>
                </p>
            </div>
        </footer>
    </div>
</body>
</html>
"""


def render_page(title: str, content: str) -> str:
    """Render a full HTML page."""
    return BASE_TEMPLATE.format(title=html.escape(title), content=content)


def render_listing() -> str:
    entries = history_store.list_builds()
    if not entries:
        return render_page("Build History", """
        <h1 class="text-2xl font-bold text-gray-900 mb-6">Build History</h1>
        <p class="text-gray-500">No builds yet.</p>
        """)

    rows = []
    for entry in entries:
        rows.append(f"""
            <tr class="border-b border-gray-100 hover:bg-gray-50">
                <td class="px-4 py-2"><a class="text-indigo-600 hover:text-indigo-800 code-block" href="/builds?file={quote(entry.name)}">{html.escape(entry.name)}</a></td>
                <td class="px-4 py-2 text-sm text-gray-600">{format_datetime(entry.modified_at)}</td>
                <td class="px-4 py-2 text-sm text-gray-600">{format_size(entry.size_bytes)}</td>
            </tr>""")

    rows_html = "".join(rows)
    return render_page("Build History", f"""
        <h1 class="text-2xl font-bold text-gray-900 mb-6">Build History</h1>
        <table class="min-w-full bg-white shadow-sm rounded-lg">
            <thead>
                <tr class="text-left text-xs uppercase text-gray-500 border-b border-gray-200">
                    <th class="px-4 py-2">Build</th>
                    <th class="px-4 py-2">Finished</th>
                    <th class="px-4 py-2">Size</th>
                </tr>
            </thead>
            <tbody>{rows_html}
            </tbody>
        </table>
        """)


def render_detail(file_name: str, content: str) -> str:
    summary = ""
    try:
        record = history_store.load(file_name)
    except HistoryNotFoundError:
        record = None

    if record is not None:
        summary = f"""
        <dl class="grid grid-cols-2 gap-2 mb-6 text-sm">
            <dt class="text-gray-500">Commit</dt><dd class="code-block">{html.escape(record.commit_sha)}</dd>
            <dt class="text-gray-500">Branch</dt><dd>{html.escape(record.branch)}</dd>
            <dt class="text-gray-500">Date</dt><dd>{format_datetime(record.date)}</dd>
            <dt class="text-gray-500">Result</dt><dd>{status_badge(record)}</dd>
        </dl>"""

    return render_page(file_name, f"""
        <a href="/builds" class="text-indigo-600 hover:text-indigo-800 text-sm">← All builds</a>
        <h1 class="text-2xl font-bold text-gray-900 my-4 code-block">{html.escape(file_name)}</h1>
        {summary}
        <pre class="code-block bg-gray-900 text-gray-100 p-4 rounded-lg overflow-x-auto whitespace-pre-wrap">{html.escape(content)}</pre>
        """)


@router.get("/builds", response_class=HTMLResponse)
async def builds_page(file: Optional[str] = Query(None, max_length=255)):
    """Build history listing, or one build file when ?file= is given."""
    if file is None:
        return HTMLResponse(render_listing())

    try:
        content = history_store.read(file)
    except HistoryNotFoundError as e:
        logger.info(f"history_file_unavailable error={e}")
        return HTMLResponse(
            render_page("Error", f"""
            <div class="bg-red-50 border border-red-200 rounded-lg p-4">
                <h2 class="text-lg font-medium text-red-800">Could not read build file</h2>
                <p class="mt-1 text-sm text-red-700">{html.escape(str(e))}</p>
                <a href="/builds" class="mt-4 inline-block text-indigo-600 hover:text-indigo-800">← All builds</a>
            </div>
            """),
            status_code=404,
        )

    return HTMLResponse(render_detail(file, content))
