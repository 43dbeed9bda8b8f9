"""batchflow - production batch, packing area and finished goods workflow."""

__version__ = "0.1.0"
