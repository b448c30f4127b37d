# src/noderig/observers/jsonfile.py
from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
from .interface import Observer
from .events import BaseEvent


class JsonFileObserver(Observer):
    """Appends one JSON object per event; ``events()`` reads them back."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def notify(self, event: BaseEvent) -> None:
        record = {"type": event.__class__.__name__, **event.dict()}
        with self.path.open("a") as f:
            f.write(json.dumps(record, default=str, sort_keys=True))
            f.write("\n")

    def events(self, run_id: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        if not self.path.exists():
            return
        with self.path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                if run_id is None or record.get("run_id") == run_id:
                    yield record
