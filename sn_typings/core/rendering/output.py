"""
Output Destination

Writes rendered text so that a partially written file never appears at the
destination path.
"""

import os
import tempfile
from pathlib import Path


DEFAULT_OUTPUT_FILENAME = "types.d.ts"


class OutputDestinationConflict(Exception):
    """Raised when the destination cannot be written as requested."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class OutputDestination:
    """
    Destination file for rendered declarations.

    Call ``check`` before fetching anything so that a conflict is reported
    before work is wasted; ``write`` re-checks atomically.

    Example:
        >>> destination = OutputDestination("types/incident.d.ts", force=False)
        >>> destination.check()
        >>> destination.write(text)
    """

    def __init__(self, path: str | Path = DEFAULT_OUTPUT_FILENAME, force: bool = False):
        self.path = Path(path).expanduser().absolute()
        self.force = force

    def check(self) -> None:
        """
        Raises:
            OutputDestinationConflict: If the file exists without ``force``,
                the path is a directory, or its parent directory is missing
        """
        if self.path.is_dir():
            raise OutputDestinationConflict(self.path, "destination is a directory")
        if self.path.exists() and not self.force:
            raise OutputDestinationConflict(self.path, "file already exists (use --force to overwrite)")
        if not self.path.parent.is_dir():
            raise OutputDestinationConflict(self.path, "parent directory does not exist")

    def write(self, text: str) -> Path:
        """
        Write ``text`` via a temporary file in the destination directory.

        Returns:
            Path written
        """
        self.check()
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())

            if self.force:
                os.replace(temp_path, self.path)
            else:
                try:
                    # Fails if the destination appeared since check()
                    os.link(temp_path, self.path)
                except FileExistsError as e:
                    raise OutputDestinationConflict(self.path, "file already exists") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()
        return self.path
