"""
Figure wrapper and named figure collections.

Every plotting method returns a Figure (matplotlib figure plus title,
description and metadata) so the pipeline can save, list and close plots
uniformly. seaborn's ClusterGrid is unwrapped to its underlying figure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, Literal, Optional

import matplotlib.figure
import matplotlib.pyplot as plt

OutputFormat = Literal["png", "pdf", "svg"]

_FORMATS = ("png", "pdf", "svg")


@dataclass
class Figure:
    """
    A matplotlib figure with the text needed to describe it.

    Attributes
    ----------
    fig : matplotlib.figure.Figure
        The underlying figure
    title : str
        Human-readable title
    description : str
        What the figure shows (recorded in the run manifest)
    metadata : dict
        Parameters used to draw the figure; `created_at` is added
        automatically

    Examples
    --------
    >>> fig = Figure(
    ...     fig=plt.figure(),
    ...     title="Size Factors",
    ...     description="Median-of-ratios size factors, mode near 1",
    ... )
    >>> fig.save("size_factors.pdf")
    """
    fig: matplotlib.figure.Figure
    title: str
    description: str
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if "created_at" not in self.metadata:
            self.metadata["created_at"] = datetime.now().isoformat()

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
        **kwargs
    ) -> Path:
        """
        Save figure to file.

        Parameters
        ----------
        path : Path or str
            Output file path. Parent directories are created.
        format : str, optional
            Output format. If None, inferred from the extension (png when
            the extension is not a known format).
        dpi : int, default 300
            Resolution for raster output.

        Returns
        -------
        Path
            The path where the figure was saved.
        """
        path = Path(path)
        if format is None:
            format = path.suffix.lstrip(".").lower()
            if format not in _FORMATS:
                format = "png"

        path.parent.mkdir(parents=True, exist_ok=True)
        self.fig.savefig(
            path,
            format=format,
            dpi=dpi,
            bbox_inches="tight",
            facecolor="white",
            **kwargs
        )
        return path

    def close(self):
        """Close the figure to free memory."""
        plt.close(self.fig)


class FigureCollection:
    """
    Named figures kept in creation order.

    Examples
    --------
    >>> collection = FigureCollection()
    >>> collection.add("pca", viz.plot_pca(projection, metadata))
    >>> collection.save_all(Path("figures/"), format="pdf")
    """

    def __init__(self):
        self.figures: dict[str, Figure] = {}
        self._creation_order: list[str] = []

    def add(self, key: str, fig: Figure) -> "FigureCollection":
        """Add (or replace) a named figure; returns self for chaining."""
        self.figures[key] = fig
        if key not in self._creation_order:
            self._creation_order.append(key)
        return self

    def get(self, key: str) -> Optional[Figure]:
        return self.figures.get(key)

    def __getitem__(self, key: str) -> Figure:
        return self.figures[key]

    def __contains__(self, key: str) -> bool:
        return key in self.figures

    def __len__(self) -> int:
        return len(self.figures)

    def __iter__(self) -> Iterator[tuple[str, Figure]]:
        for key in self._creation_order:
            yield key, self.figures[key]

    def save_all(
        self,
        output_dir: Path | str,
        format: OutputFormat = "png",
        dpi: int = 300
    ) -> dict[str, Path]:
        """
        Save every figure as `<output_dir>/<key>.<format>`.

        Returns
        -------
        dict[str, Path]
            Figure key -> saved path, in creation order.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        saved = {}
        for key, fig in self:
            saved[key] = fig.save(output_dir / f"{key}.{format}", format=format, dpi=dpi)
        return saved

    def describe(self) -> list[dict]:
        """Title, description and metadata of each figure (for the run manifest)."""
        return [
            {"key": key, "title": fig.title, "description": fig.description, **fig.metadata}
            for key, fig in self
        ]

    def close_all(self):
        """Close all figures and empty the collection."""
        for _, fig in self:
            fig.close()
        self.figures.clear()
        self._creation_order.clear()
