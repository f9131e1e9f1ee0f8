"""
State History

Append-only record of platoon snapshots owned by the simulation engine.
Consumers (reporting, plotting, training-data export) get read access only.
"""

import logging
from pathlib import Path
from typing import List, Iterator, Optional, Union

import pandas as pd

from .models import PlatoonState

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = [
    'time', 'truck', 'position', 'velocity', 'acceleration',
    'jerk', 'length', 'weight', 'gap'
]


class StateHistory:
    """Append-only sequence of PlatoonState snapshots"""

    def __init__(self):
        self._states: List[PlatoonState] = []

    def append(self, state: PlatoonState):
        self._states.append(state)

    def clear(self):
        self._states = []

    def __len__(self) -> int:
        return len(self._states)

    def __getitem__(self, index):
        return self._states[index]

    def __iter__(self) -> Iterator[PlatoonState]:
        return iter(tuple(self._states))

    @property
    def latest(self) -> Optional[PlatoonState]:
        return self._states[-1] if self._states else None

    def times(self) -> List[float]:
        return [s.time for s in self._states]

    def to_dataframe(self) -> pd.DataFrame:
        """
        Flatten the history into long format

        Returns:
            DataFrame with one row per truck per recorded step. ``gap`` is
            the bumper-to-bumper distance to the truck ahead (NaN for the
            lead truck).
        """
        rows = []
        for state in self._states:
            previous = None
            for index, truck in enumerate(state.trucks):
                gap = float('nan')
                if previous is not None:
                    gap = previous.position - truck.position - previous.length
                rows.append({
                    'time': state.time,
                    'truck': index,
                    'position': truck.position,
                    'velocity': truck.velocity,
                    'acceleration': truck.acceleration,
                    'jerk': truck.jerk,
                    'length': truck.length,
                    'weight': truck.weight,
                    'gap': gap
                })
                previous = truck

        return pd.DataFrame(rows, columns=HISTORY_COLUMNS)

    def save(self, output_path: Union[str, Path], format: str = 'csv') -> Path:
        """
        Save history to disk

        Args:
            output_path: Destination file
            format: csv, json or parquet
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        df = self.to_dataframe()

        if format == 'parquet':
            df.to_parquet(output_path, compression='snappy')
        elif format == 'csv':
            df.to_csv(output_path, index=False)
        elif format == 'json':
            df.to_json(output_path, orient='records', indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Saved {len(self)} history steps to {output_path}")
        return output_path


class HistoryView:
    """
    Read-only view of a StateHistory

    Handed out by the engine so consumers can read and export recorded
    states without appending to or clearing them.
    """

    def __init__(self, history: StateHistory):
        self._history = history

    def __len__(self) -> int:
        return len(self._history)

    def __getitem__(self, index):
        return self._history[index]

    def __iter__(self) -> Iterator[PlatoonState]:
        return iter(self._history)

    @property
    def latest(self) -> Optional[PlatoonState]:
        return self._history.latest

    def times(self) -> List[float]:
        return self._history.times()

    def to_dataframe(self) -> pd.DataFrame:
        return self._history.to_dataframe()

    def save(self, output_path: Union[str, Path], format: str = 'csv') -> Path:
        return self._history.save(output_path, format=format)
