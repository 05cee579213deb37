import asyncio
import html
import os
from pathlib import Path
from typing import List
from urllib.parse import quote

from fastapi.responses import HTMLResponse

from rootshare.app.exceptions import IOFailureError
from rootshare.app.models.transfer import DirectoryEntry
from rootshare.app.services.storage_manager import is_staging_name

_UNITS = ["B", "KB", "MB", "GB", "TB"]

_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Index of {title}</title>
<style>
body {{ font-family: -apple-system, "Segoe UI", Roboto, sans-serif; margin: 2rem auto; max-width: 960px; color: #222; }}
h1 {{ font-size: 1.4rem; }}
.breadcrumbs a {{ text-decoration: none; }}
ul.entries {{ list-style: none; padding: 0; }}
ul.entries li {{ display: flex; justify-content: space-between; padding: 0.4rem 0; border-bottom: 1px solid #eee; }}
a.dir {{ font-weight: bold; }}
.size {{ color: #777; font-size: 0.9em; }}
@media (max-width: 600px) {{ .size {{ display: none; }} }}
</style>
</head>
<body>
<h1 class="breadcrumbs">{breadcrumbs}</h1>
<form method="post" enctype="multipart/form-data" action="{action}">
<input type="file" name="file" multiple>
<button type="submit">Upload</button>
</form>
<ul class="entries">
{items}
</ul>
</body>
</html>
"""


def human_readable_size(size: int) -> str:
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {_UNITS[unit]}"


def _scan(path: Path) -> List[DirectoryEntry]:
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            if is_staging_name(entry.name):
                continue
            try:
                is_dir = entry.is_dir()
                size = 0 if is_dir else entry.stat().st_size
            except OSError:
                # Dangling symlink or entry removed mid-scan
                continue
            entries.append(DirectoryEntry(name=entry.name, is_directory=is_dir, size_bytes=size))
    entries.sort(key=lambda e: (not e.is_directory, e.name.lower()))
    return entries


async def list_entries(path: Path) -> List[DirectoryEntry]:
    try:
        return await asyncio.to_thread(_scan, path)
    except OSError as e:
        raise IOFailureError.from_os_error("Directory listing", e)


def _breadcrumbs(request_path: str) -> str:
    crumbs = ['<a href="/">/</a>']
    href = ""
    for part in [p for p in request_path.split("/") if p]:
        href += "/" + quote(part)
        crumbs.append(f'<a href="{href}/">{html.escape(part)}</a>/')
    return " ".join(crumbs)


def _parent_path(request_path: str) -> str:
    parts = [p for p in request_path.split("/") if p]
    if len(parts) <= 1:
        return "/"
    return "/" + "/".join(quote(p) for p in parts[:-1]) + "/"


async def render_listing(canonical_path: Path, request_path: str) -> HTMLResponse:
    """Render the browsing page for a directory."""
    entries = await list_entries(canonical_path)

    base = "/" + "/".join(quote(p) for p in request_path.split("/") if p)
    base = base.rstrip("/") + "/"

    items = []
    if base != "/":
        items.append(f'<li><a class="dir" href="{_parent_path(request_path)}">../</a><span></span></li>')
    for entry in entries:
        name = html.escape(entry.name)
        if entry.is_directory:
            items.append(
                f'<li><a class="dir" href="{base}{quote(entry.name)}/">{name}/</a>'
                f'<span class="size">-</span></li>'
            )
        else:
            items.append(
                f'<li><a href="{base}{quote(entry.name)}">{name}</a>'
                f'<span class="size">{human_readable_size(entry.size_bytes)}</span></li>'
            )

    page = _PAGE.format(
        title=html.escape(request_path or "/"),
        breadcrumbs=_breadcrumbs(request_path),
        action=base,
        items="\n".join(items),
    )
    return HTMLResponse(page)
