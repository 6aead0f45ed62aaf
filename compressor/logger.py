"""
Centralized logging for Compressor
Writes to compressor.log (overwrites on each run)
"""

import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


DEFAULT_LOG_FILE = "compressor.log"


class FileLogger:
    """Simple file logger that overwrites log on each run"""

    def __init__(self, log_file: Union[str, Path] = DEFAULT_LOG_FILE):
        log_file = Path(log_file)
        self.log_path = log_file if log_file.is_absolute() else Path.cwd() / log_file
        self._lock = threading.Lock()

        # Overwrite log file (mode 'w')
        try:
            self.log_file = open(self.log_path, 'w', encoding='utf-8', buffering=1)
        except OSError:
            # Fallback: if can't write there, try temp directory
            self.log_path = Path(tempfile.gettempdir()) / log_file.name
            self.log_file = open(self.log_path, 'w', encoding='utf-8', buffering=1)
        self._write_header()

    def _write_header(self):
        """Write log file header"""
        self.log_file.write("=" * 70 + "\n")
        self.log_file.write("COMPRESSOR - LOG FILE\n")
        self.log_file.write(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        self.log_file.write(f"Log file: {self.log_path}\n")
        self.log_file.write("=" * 70 + "\n\n")
        self.log_file.flush()

    def log(self, message):
        """Write message to log file"""
        timestamp = datetime.now().strftime('%H:%M:%S')
        # Worker threads log concurrently
        with self._lock:
            if self.log_file.closed:
                return
            self.log_file.write(f"[{timestamp}] {message}\n")
            self.log_file.flush()

    def close(self):
        """Close log file"""
        with self._lock:
            self.log_file.close()


# Global logger instance
_logger: Optional[FileLogger] = None
_log_file: Union[str, Path] = DEFAULT_LOG_FILE


def get_logger() -> FileLogger:
    """Get or create the global logger instance"""
    global _logger
    if _logger is None:
        _logger = FileLogger(_log_file)
    return _logger


def set_log_file(log_file: Union[str, Path]):
    """Redirect the global logger, closing any open log first"""
    global _log_file
    close_logger()
    _log_file = log_file


def log(message):
    """Convenience function to log a message"""
    get_logger().log(str(message))


def log_separator():
    """Log a visual separator"""
    log("=" * 70)


def close_logger():
    """Close the logger"""
    global _logger
    if _logger:
        _logger.close()
        _logger = None
