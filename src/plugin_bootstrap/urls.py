"""URL helpers for plugin sources.

Only the shapes below are recognized:

- ``github.com/<owner>/<repo>/blob/<branch>/<path>``  single file (rewritten to raw)
- ``raw.githubusercontent.com/<owner>/<repo>/<branch>/<path>``  single file
- ``github.com/<owner>/<repo>[.git]``  repository, default branch
- ``github.com/<owner>/<repo>/tree/<branch>[/...]``  repository at branch
"""

import re
from pathlib import PurePosixPath
from urllib.parse import unquote
from urllib.parse import urlparse

from pydantic import ValidationError

from .schema import RepoReference

GITHUB_HOSTS = {"github.com", "www.github.com"}
RAW_HOST = "raw.githubusercontent.com"

_URL_PATTERN = re.compile(r"""https?://[^\s<>"'`]+""", re.IGNORECASE)
_TRAILING_PUNCTUATION = ").,;:!?>]}'\""
_REPO_SUFFIXES = (".git", ".zip")


def _path_parts(url: str) -> tuple[str, list[str]]:
    parsed = urlparse(url.strip())
    parts = [p for p in parsed.path.split("/") if p]
    return parsed.netloc.lower(), parts


def to_raw_file_url(url: str) -> str | None:
    """Return the direct-content URL for a single hosted file, or None.

    Pure function; performs no network access.

    Examples:
        >>> to_raw_file_url("https://github.com/o/r/blob/main/dir/file.ts")
        'https://raw.githubusercontent.com/o/r/main/dir/file.ts'
        >>> to_raw_file_url("https://github.com/o/r") is None
        True
    """
    host, parts = _path_parts(url)
    if host in GITHUB_HOSTS and len(parts) >= 5 and parts[2] == "blob":
        owner, repo, _, branch = parts[:4]
        file_path = "/".join(parts[4:])
        return f"https://{RAW_HOST}/{owner}/{repo}/{branch}/{file_path}"
    if host == RAW_HOST and len(parts) >= 4:
        return url.strip()
    return None


def parse_repo_reference(url: str) -> RepoReference | None:
    """Extract owner, repository name and optional branch from a repository URL.

    Returns None when the host is not recognized or owner/name are missing.
    """
    host, parts = _path_parts(url)
    if host not in GITHUB_HOSTS or len(parts) < 2:
        return None

    owner, name = parts[0], parts[1]
    for suffix in _REPO_SUFFIXES:
        if name.lower().endswith(suffix):
            name = name[: -len(suffix)]
            break

    branch = None
    if len(parts) >= 4 and parts[2] == "tree":
        branch = unquote(parts[3])

    try:
        return RepoReference(owner=owner, name=name, branch=branch)
    except ValidationError:
        return None


def filename_from_url(url: str) -> str | None:
    """Basename of the URL path, or None if there is no usable one.

    Decoded names that would escape or traverse a directory (``.``, ``..``,
    anything holding a path separator) count as unusable.
    """
    parsed = urlparse(url.strip())
    if parsed.path.endswith("/"):
        return None
    name = PurePosixPath(unquote(parsed.path)).name
    if name in {".", ".."} or "/" in name or "\\" in name:
        return None
    return name or None


def extract_source_urls(text: str) -> list[str]:
    """Pull plugin source URLs out of free text.

    Accepts one URL per line as well as URLs embedded in pasted prose.
    Order is preserved and duplicates are kept; each occurrence is its own
    attempt.
    """
    urls = []
    for match in _URL_PATTERN.finditer(text or ""):
        candidate = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if candidate:
            urls.append(candidate)
    return urls
