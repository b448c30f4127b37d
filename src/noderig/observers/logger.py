from __future__ import annotations
import logging
from .events import BaseEvent, StepFailed, RollbackResult


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts", "env", "context"))

        if isinstance(event, StepFailed) or (isinstance(event, RollbackResult) and event.status == "failed"):
            self.logger.error(f"[EVENT] {etype}: {msg}")
        else:
            self.logger.info(f"[EVENT] {etype}: {msg}")
