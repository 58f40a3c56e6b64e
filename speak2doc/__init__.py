"""speak2doc - speak to a medical consultation assistant through switchable STT backends."""

__version__ = "0.1.0"
