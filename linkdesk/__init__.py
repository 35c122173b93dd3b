"""LinkDesk - order fulfilment for the link-building marketplace."""

__version__ = "1.0.0"
