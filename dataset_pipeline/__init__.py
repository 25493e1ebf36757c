"""Dataset Pipeline - scheduled scrape, normalize, load and archive workflow."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("dataset-pipeline")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for development without install
