import logging
from pathlib import Path

from journey_refiner.domain.ports.file_system import FileSystemPort

logger = logging.getLogger(__name__)


class FileSystemAdapter(FileSystemPort):
    """Concrete implementation of FileSystemPort using standard Python libraries."""

    def read_file(self, file_path: str) -> str:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return f.read()
        except Exception as e:
            logger.error(f"Error reading file {file_path}: {e}")
            raise

    def write_file(self, file_path: str, content: str) -> None:
        try:
            path = Path(file_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
        except Exception as e:
            logger.error(f"Error writing file {file_path}: {e}")
            raise

    def exists(self, path: str) -> bool:
        return Path(path).exists()
