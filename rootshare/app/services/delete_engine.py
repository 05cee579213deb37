import asyncio
import shutil

import aiofiles.os

from rootshare.app.exceptions import ForbiddenError, IOFailureError, NotFoundError
from rootshare.app.models.responses import DeleteResult
from rootshare.app.models.transfer import ResolvedPath
from rootshare.logger_config import setup_logger

logger = setup_logger()


class DeleteEngine:
    async def delete(self, resolved: ResolvedPath) -> DeleteResult:
        """Remove a file, or a directory with everything below it."""
        if resolved.is_root:
            raise ForbiddenError("Cannot delete root")
        path = resolved.require_contained()

        try:
            if await aiofiles.os.path.isdir(path):
                await asyncio.to_thread(shutil.rmtree, path)
                kind = "directory"
            else:
                await aiofiles.os.remove(path)
                kind = "file"
        except FileNotFoundError:
            # Removed by a concurrent request after resolution
            raise NotFoundError("Not found")
        except OSError as e:
            logger.error(f"Error deleting {resolved.relative}: {e.strerror}", exc_info=True)
            raise IOFailureError.from_os_error("Delete", e)

        logger.info(f"Deleted {kind}: {resolved.relative}")
        return DeleteResult(success=True, message=f"Deleted {kind} {path.name}", kind=kind)
