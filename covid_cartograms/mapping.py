import logging
from pathlib import Path

import matplotlib.pyplot as plt
from matplotlib.colors import LinearSegmentedColormap

from .errors import SchemaError

log = logging.getLogger(__name__)


def plot_cartogram(data, fill_var, legend_title, colours, ax=None, edge_colour="#4d4d4d", line_width=0.1, figsize=(12, 7)):
    """
    Draw a cartogram layer filled by one indicator.

    Args:
        data (gpd.GeoDataFrame): Deformed polygons
        fill_var (str): Column used for the fill colour
        legend_title (str): Label of the colour bar
        colours (list): Hex colours of the continuous ramp, low to high
        ax (matplotlib.axes.Axes): Axes to draw on; a new figure is created when omitted
        edge_colour (str): Outline colour
        line_width (float): Outline width
        figsize (tuple): Size of a newly created figure

    Returns:
        tuple: (fig, ax)
    """
    if fill_var not in data.columns:
        raise SchemaError(f"cannot plot missing column {fill_var!r}")

    if ax is None:
        fig, ax = plt.subplots(figsize=tuple(figsize), constrained_layout=True)
    else:
        fig = ax.figure

    cmap = LinearSegmentedColormap.from_list(fill_var, list(colours))
    data.plot(
        ax=ax,
        column=fill_var,
        cmap=cmap,
        edgecolor=edge_colour,
        linewidth=line_width,
        legend=True,
        legend_kwds={"label": legend_title, "orientation": "horizontal", "shrink": 0.6, "pad": 0.02},
    )
    ax.set_axis_off()
    return fig, ax


def save_figure(fig, path, dpi=300):
    """Write a figure to disk, creating the directory when needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white")
    log.info("Saved %s", path)
    return path


def render_all(cartograms, styles, out_dir, dpi=300, edge_colour="#4d4d4d", line_width=0.1, figsize=(12, 7), close=True):
    """
    Plot and save one image per cartogram.

    Args:
        cartograms (dict): Indicator name -> deformed GeoDataFrame
        styles (dict): Indicator name -> PlotStyleCfg
        out_dir (str | Path): Output directory
        dpi (int): Image resolution
        close (bool): Close each figure after saving

    Returns:
        dict: Indicator name -> image path
    """
    paths = {}
    for name, layer in cartograms.items():
        style = styles[name]
        fig, _ = plot_cartogram(
            layer, style.column, style.legend_title, style.colours,
            edge_colour=edge_colour, line_width=line_width, figsize=figsize,
        )
        paths[name] = save_figure(fig, Path(out_dir) / f"cartogram_{name}.png", dpi=dpi)
        if close:
            plt.close(fig)
    return paths
