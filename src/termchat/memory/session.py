from __future__ import annotations

import os
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class SessionKey:
    parent_process_id: int
    started_at: int

    @classmethod
    def for_current_process(cls) -> SessionKey:
        """Key the session by the terminal's shell process and the startup second.

        Two invocations under the same parent within the same second share a key.
        """
        return cls(parent_process_id=os.getppid(), started_at=int(time.time()))

    def __str__(self) -> str:
        return f"{self.parent_process_id}/{self.started_at}"
