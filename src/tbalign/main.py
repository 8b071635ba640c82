"""Main function that calls the Driver class.

This is the module called by the command-line entry point. It sets up the
`Driver` object used to align the sensors and measure their efficiency.
"""

from .driver import Driver


def run(cfg):
    """Align the sensors of one run and measure their efficiency.

    Parameters
    ----------
    cfg : dict
        Full driver configuration

    Returns
    -------
    Dict[int, float]
        Overall efficiency of each sensor
    """
    driver = Driver(cfg)

    return driver.run()
