from .thumbnail import PillowThumbnailGenerator

__all__ = ["PillowThumbnailGenerator"]
