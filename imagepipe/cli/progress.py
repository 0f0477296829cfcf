"""Terminal progress bars for the CLI."""

from __future__ import annotations

import sys

from tqdm import tqdm


class ProgressReporter:
    """
    Thin wrapper over a tqdm bar.

    ``update`` advances by whole steps (batch items); ``set_fraction`` moves
    the bar to an absolute fraction of ``total`` (encoder progress).
    """

    def __init__(self, total: int, description: str = "Converting",
                 unit: str = "item") -> None:
        self.total = total
        self.completed = 0
        self._bar = tqdm(
            total=total, desc=description, unit=unit,
            file=sys.stderr, dynamic_ncols=True, leave=False,
        )

    def update(self, n: int = 1, suffix: str = "") -> None:
        self.completed += n
        if suffix:
            self._bar.set_postfix_str(suffix)
        self._bar.update(n)

    def set_fraction(self, fraction: float) -> None:
        target = int(round(fraction * self.total))
        if target > self.completed:
            self.update(target - self.completed)

    def close(self) -> None:
        self._bar.close()
