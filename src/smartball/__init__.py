"""Smart ball kick sensor toolkit: GATT command engine, sample codecs and force estimation."""

__version__ = "0.1.0"
