from abc import ABC, abstractmethod


class FileSystemPort(ABC):
    """Interface for reading and writing candidate test files."""

    @abstractmethod
    def read_file(self, file_path: str) -> str:
        """Reads a UTF-8 text file."""
        pass

    @abstractmethod
    def write_file(self, file_path: str, content: str) -> None:
        """Writes a UTF-8 text file, creating parent directories."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass
