import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(threadName)s - %(message)s'


class BaseLogger(ABC):
    """
    Abstract base class for engine loggers.

    Wraps a stdlib logger so the caller and every scheduler thread write
    through the same handlers; the thread name in each record tells which
    run task produced it. Components that are not handed a logger fall back
    to ``logging.getLogger(__name__)``, which exposes the same methods.
    """
    def __init__(self, name: str, debug: bool = False):
        self.name = name
        self.level = logging.DEBUG if debug else logging.INFO
        self.formatter = logging.Formatter(LOG_FORMAT)

        self.logger = logging.getLogger(name)
        self.logger.propagate = False
        self.logger.setLevel(self.level)
        self.logger.handlers = []
        for handler in self._create_handlers():
            handler.setFormatter(self.formatter)
            self.logger.addHandler(handler)

    @abstractmethod
    def _create_handlers(self) -> List[logging.Handler]:
        pass

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.logger.info(msg, *args, **kwargs)

    def warning(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.logger.error(msg, *args, **kwargs)

    def exception(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        """Log at error level together with the active traceback."""
        self.logger.exception(msg, *args, **kwargs)

    def critical(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.logger.critical(msg, *args, **kwargs)

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)


def _file_handler(log_dir: str, filename: str) -> logging.Handler:
    if not os.path.exists(log_dir):
        raise ValueError(f"Log directory {log_dir} does not exist")
    return logging.FileHandler(os.path.join(log_dir, filename))


class FileLogger(BaseLogger):
    """
    Writes every record to ``log_dir/filename``. Without a filename, one is
    derived from the logger name and the current time.
    """
    def __init__(self, name: str,
                 log_dir: str,
                 filename: Optional[str] = None,
                 debug: bool = False):
        self.log_dir = log_dir
        self.filename = filename or f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        self.log_file = os.path.join(log_dir, self.filename)
        super().__init__(name, debug)

    def _create_handlers(self) -> List[logging.Handler]:
        return [_file_handler(self.log_dir, self.filename)]


class CompositeLogger(BaseLogger):
    """
    Writes to the console at the configured level and, when a log directory
    is given, everything down to debug to a file in that directory.
    """
    def __init__(self, name: str,
                 log_dir: Optional[str] = None,
                 filename: Optional[str] = None,
                 debug: bool = False):
        self.log_dir = log_dir
        self.filename = filename or f"{name}.log"
        super().__init__(name, debug)
        self.logger.setLevel(logging.DEBUG if log_dir is not None else self.level)

    def _create_handlers(self) -> List[logging.Handler]:
        console = logging.StreamHandler()
        console.setLevel(self.level)
        handlers = [console]
        if self.log_dir is not None:
            file_handler = _file_handler(self.log_dir, self.filename)
            file_handler.setLevel(logging.DEBUG)
            handlers.append(file_handler)
        return handlers
