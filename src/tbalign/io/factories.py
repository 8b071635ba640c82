"""Construct an event-pair reader from its configuration."""

from tbalign.utils.factory import instantiate, module_dict

from .read import hdf5, text

# Build a dictionary of available readers
READER_DICT = {}
for module in [hdf5, text]:
    READER_DICT.update(**module_dict(module))


def reader_factory(reader_cfg):
    """Instantiates a reader based on a configuration.

    Parameters
    ----------
    reader_cfg : dict
        Reader configuration dictionary

    Returns
    -------
    object
        Initialized reader object
    """
    return instantiate(READER_DICT, reader_cfg)
