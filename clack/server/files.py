"""
Server-side staging area for FILE payloads.

Sessions run concurrently and may upload the same name at the same time.
Each write goes to its own temp file in the staging directory and is then
moved over the target with os.replace, so readers only ever see a complete
file and the last writer wins.
"""
import logging
import os
import tempfile
from pathlib import Path, PurePath

logger = logging.getLogger(__name__)

ENC = "utf-8"


class FileStore:
    """Writes uploaded files into a single staging directory, keyed by file name."""

    def __init__(self, staging_dir="clack_files"):
        self.staging_path = Path(staging_dir)

    def path_for(self, file_name: str) -> Path:
        ''' Resolve file_name inside the staging directory; names with path parts are refused '''
        if not file_name or PurePath(file_name).name != file_name or file_name in (".", ".."):
            raise ValueError(f"invalid file name: {file_name!r}")
        return self.staging_path / file_name

    def store(self, file_name: str, contents: str) -> Path:
        '''
        Atomically write contents to <staging_dir>/<file_name> and return the final path.
        Raises ValueError for a bad name and OSError if the write fails.
        '''
        target = self.path_for(file_name)
        self.staging_path.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{file_name}.", suffix=".part",
                                        dir=self.staging_path)
        try:
            with os.fdopen(fd, "w", encoding=ENC) as f:
                f.write(contents)
            os.replace(tmp_name, target)
        except BaseException:
            # never leave half-written temp files behind
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.info("Stored %s (%d chars)", target, len(contents))
        return target

    def read(self, file_name: str) -> str:
        return self.path_for(file_name).read_text(encoding=ENC)
