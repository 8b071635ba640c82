"""Sets up fixtures general to the entire test suite of this package.

This file is read during the collection phase of pytest when running anything
inside this directory.
"""

import numpy as np
import pytest

from tbalign.data import EventPair


def make_event_pairs(
    num_events,
    offsets,
    sigma_x=0.1,
    half_width_y=0.3,
    efficiency=0.9,
    extent=4.0,
    seed=0,
):
    """Generate synthetic telescope/sensor event pairs.

    Each event holds one track prediction per sensor, uniformly distributed
    within the sensor. With probability `efficiency`, the sensor records a hit
    displaced from the track by the sensor offset, a Gaussian smearing along x
    and a uniform smearing along y.

    Parameters
    ----------
    num_events : int
        Number of events to generate
    offsets : Dict[int, Tuple[float, float]]
        Maps each sensor ID onto its true (x, y) offset
    sigma_x : float, default 0.1
        Resolution along x
    half_width_y : float, default 0.3
        Half-width of the acceptance along y
    efficiency : float, default 0.9
        Probability that the sensor records the hit
    extent : float, default 4.0
        Half-width of the region in which tracks are generated
    seed : int, default 0
        Random generator seed

    Returns
    -------
    List[EventPair]
        List of synthetic event pairs
    """
    rng = np.random.default_rng(seed)
    pairs = []
    for event in range(num_events):
        tracks, hits = {}, {}
        for sensor_id, (off_x, off_y) in offsets.items():
            track = rng.uniform(-extent, extent, size=2)
            tracks[sensor_id] = track[None, :]
            if rng.uniform() < efficiency:
                dx = rng.normal(off_x, sigma_x)
                dy = rng.uniform(off_y - half_width_y, off_y + half_width_y)
                hits[sensor_id] = (track - [dx, dy])[None, :]

        pairs.append(EventPair(event, tracks, hits))

    return pairs


@pytest.fixture(name="event_factory", scope="session")
def fixture_event_factory():
    """Provides the synthetic event pair generator to the tests."""
    return make_event_pairs


@pytest.fixture(name="samples")
def fixture_samples():
    """Generates 10000 correlation samples: Gaussian along x, N(0.2, 0.05),
    and a uniform plateau along y, over [-0.3, 0.3]."""
    rng = np.random.default_rng(seed=0)
    dx = rng.normal(0.2, 0.05, size=10000)
    dy = rng.uniform(-0.3, 0.3, size=10000)

    return dx, dy
