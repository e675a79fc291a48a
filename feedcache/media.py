import logging
import os
import shutil

logger = logging.getLogger(__name__)


class TemporaryMedia:
    """Scratch directory for downloaded media shown alongside feed items."""

    def __init__(self, directory: str):
        self.directory = directory

    def clear(self) -> int:
        """Remove everything under the directory. Never raises."""
        if not os.path.isdir(self.directory):
            return 0

        removed = 0
        for name in os.listdir(self.directory):
            path = os.path.join(self.directory, name)
            try:
                if os.path.isdir(path) and not os.path.islink(path):
                    shutil.rmtree(path)
                else:
                    os.remove(path)
                removed += 1
            except OSError as e:
                logger.warning(f"Could not remove temporary media {path}: {e}")

        logger.info(f"Cleared {removed} temporary media entries from {self.directory}")
        return removed
