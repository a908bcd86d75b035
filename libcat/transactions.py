import logging
import os
from datetime import datetime
from typing import List, Optional

logger = logging.getLogger(__name__)


class TransactionLog:
    """Append-only text log of everything that changed the library."""

    def __init__(self, path: str) -> None:
        self.path = path

    def record(self, entry: str, now: Optional[datetime] = None) -> str:
        """Append ``[timestamp] entry`` and flush it to disk right away."""
        stamp = (now or datetime.now()).strftime("%a %b %d %H:%M:%S %Y")
        line = f"[{stamp}] {entry}"
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        logger.info(line)
        return line

    def entries(self) -> List[str]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            return [line.rstrip("\n") for line in f if line.strip()]
