"""ghostedit — inline inference-driven editing."""
__version__ = "0.1.0"
