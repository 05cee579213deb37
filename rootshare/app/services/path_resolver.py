import re
from pathlib import Path
from typing import Optional

from rootshare import config
from rootshare.app.exceptions import ForbiddenError, NotFoundError
from rootshare.app.models.transfer import ResolvedPath
from rootshare.logger_config import setup_logger

logger = setup_logger()

# Separators, control characters and characters most filesystems reject
_UNSAFE_FILENAME_CHARS = re.compile(r'[\x00-\x1f\x7f/\\:*?"<>|]')


def sanitize_filename(name: Optional[str]) -> str:
    """Reduce a client-supplied filename to a single safe path component.

    Returns an empty string when nothing usable is left.
    """
    if not name:
        return ""
    # Browsers on Windows may send the full client path
    name = re.split(r"[/\\]", name)[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("", name).strip().rstrip(".")
    if name in ("", ".", ".."):
        return ""
    # Filesystems limit names in bytes, not characters
    encoded = name.encode("utf-8")
    if len(encoded) > config.MAX_NAME_BYTES:
        name = encoded[:config.MAX_NAME_BYTES].decode("utf-8", errors="ignore")
    return name


class PathResolver:
    def __init__(self, root: Path):
        self.root = root

    def resolve(self, request_path: str, for_upload: bool = False) -> ResolvedPath:
        """Canonicalize a decoded request path and check it stays under the root.

        Args:
            request_path: URL-decoded path, with or without leading slashes
            for_upload: fall back to the root when the target does not exist yet

        Raises:
            NotFoundError: the path does not exist (or cannot be canonicalized)
            ForbiddenError: the canonical path lies outside the root
        """
        candidate = self.root / request_path.lstrip("/")
        try:
            canonical = candidate.resolve(strict=True)
        except (OSError, ValueError, RuntimeError):
            if not for_upload:
                logger.debug(f"Cannot canonicalize request path: {request_path!r}")
                raise NotFoundError("Not found")
            logger.debug(f"Upload target {request_path!r} does not exist, using root")
            canonical = self.root

        resolved = ResolvedPath(path=canonical, root=self.root)
        if not resolved.is_contained:
            logger.warning(f"Rejected path escaping root: {request_path!r}")
            raise ForbiddenError("Access denied")
        return resolved

    def upload_directory(self, resolved: ResolvedPath) -> Path:
        """Directory an upload lands in: the target itself or its parent."""
        path = resolved.require_contained()
        if path.is_dir():
            return path
        return path.parent
