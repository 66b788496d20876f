# common/callbacks.py
import csv
import os
from typing import Callable, Dict, List, Optional

ProgressSink = Callable[[int, float], None]


def make_logger():
    """In-memory progress sink: returns the record dict and the callback feeding it."""
    log: Dict[str, List] = {
        "step": [],               # generation (GA) or cumulative iterations (SA)
        "best_len": [],
    }

    def cb(step_idx: int, best_len: float) -> None:
        log["step"].append(int(step_idx))
        log["best_len"].append(float(best_len))

    return log, cb


class CsvProgressLog:
    """Append-only CSV file of ``algorithm,step,best_length`` rows.

    The header is written only when the file is new or empty, so several runs
    can share one file.
    """

    HEADER = ("algorithm", "step", "best_length")

    def __init__(self, path: str, algorithm: str):
        self.path = path
        self.algorithm = algorithm
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fresh = not os.path.exists(path) or os.path.getsize(path) == 0
        self._fh = open(path, "a", newline="")
        self._writer = csv.writer(self._fh)
        if fresh:
            self._writer.writerow(self.HEADER)
            self._fh.flush()

    def __call__(self, step_idx: int, best_len: float) -> None:
        self._writer.writerow((self.algorithm, int(step_idx), f"{best_len:.6f}"))
        self._fh.flush()

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()

    def __enter__(self) -> "CsvProgressLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def read_progress_log(path: str, algorithm: Optional[str] = None) -> List[Dict[str, object]]:
    """Read back a progress CSV, optionally filtered to one algorithm."""
    with open(path, newline="") as fh:
        rows = []
        for row in csv.DictReader(fh):
            if algorithm is not None and row["algorithm"] != algorithm:
                continue
            rows.append({
                "algorithm": row["algorithm"],
                "step": int(row["step"]),
                "best_length": float(row["best_length"]),
            })
        return rows
