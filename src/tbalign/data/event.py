"""Module with the event-synchronized track/hit data structure."""

from dataclasses import dataclass, field

import numpy as np

__all__ = ["EventPair"]


@dataclass(eq=False)
class EventPair:
    """Track predictions and sensor hits which belong to the same event.

    Attributes
    ----------
    event : int
        Event number shared by the telescope and the sensor streams
    tracks : Dict[int, np.ndarray]
        Maps each sensor ID onto a (N, 2) array of positions predicted by the
        telescope tracks in the sensor plane
    hits : Dict[int, np.ndarray]
        Maps each sensor ID onto a (M, 2) array of observed hit positions
    """

    event: int
    tracks: dict = field(default_factory=dict)
    hits: dict = field(default_factory=dict)

    def __post_init__(self):
        """Casts the positions to (N, 2) float arrays."""
        for attr in ("tracks", "hits"):
            positions = getattr(self, attr)
            for key, value in positions.items():
                positions[key] = np.asarray(value, dtype=np.float64).reshape(-1, 2)

    @property
    def sensors(self):
        """Sorted list of the sensor IDs with at least one track or hit."""
        return sorted(set(self.tracks) | set(self.hits))

    def get_tracks(self, sensor_id):
        """(N, 2) array of track predictions in a sensor (possibly empty)."""
        return self.tracks.get(sensor_id, np.empty((0, 2), dtype=np.float64))

    def get_hits(self, sensor_id):
        """(M, 2) array of observed hits in a sensor (possibly empty)."""
        return self.hits.get(sensor_id, np.empty((0, 2), dtype=np.float64))

    def residuals(self, sensor_id):
        """Differences between every track prediction and every hit of a sensor.

        Parameters
        ----------
        sensor_id : int
            Sensor ID

        Returns
        -------
        np.ndarray
            (N*M, 2) array of (dx, dy) predicted minus observed positions
        """
        tracks, hits = self.get_tracks(sensor_id), self.get_hits(sensor_id)
        diff = tracks[:, None, :] - hits[None, :, :]

        return diff.reshape(-1, 2)
