import time
import uuid
from pathlib import Path

from app.logging.logger import Log


def unique_filename(original_filename: str) -> str:
    """Build ``{unix_ts}_{uuid4}{ext}``, keeping the original extension as given."""
    return f"{int(time.time())}_{uuid.uuid4()}{Path(original_filename).suffix}"


def data_type_of(filename: str) -> str:
    """Lowercased extension without the dot: ``Report.PDF`` -> ``pdf``."""
    return Path(filename).suffix.lower().lstrip(".")


class FileStorage:
    """Writes uploaded content into the upload directory and removes it again."""

    def __init__(self, upload_dir: Path | str) -> None:
        self._upload_dir = Path(upload_dir)

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def ensure_upload_dir(self) -> Path:
        """Create the upload directory if absent.

        Raises:
            OSError: if the directory cannot be created.
        """
        self._upload_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        return self._upload_dir

    def path_for(self, stored_filename: str) -> Path:
        return self._upload_dir / stored_filename

    def write(self, original_filename: str, content: bytes) -> tuple[str, Path]:
        """Store content under a fresh unique name; returns (stored_filename, path)."""
        stored_filename = unique_filename(original_filename)
        path = self.path_for(stored_filename)
        path.write_bytes(content)
        return stored_filename, path

    def remove(self, path: Path) -> None:
        """Best-effort delete; a failure is logged and not raised."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            Log.warning(f"Failed to remove stored file after error: {exc}", path=str(path))
