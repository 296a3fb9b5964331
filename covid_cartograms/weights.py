import logging

import numpy as np
from scipy.stats import rankdata

log = logging.getLogger(__name__)


def rank_scale(layer, column="weight"):
    """
    Replace raw weights by their ranks, rescaled to the mean polygon area.

    Indicator values are heavily skewed, and feeding them straight into the
    cartogram engine produces degenerate shapes. Ranks (ties averaged, so
    [5, 5, 10] -> [1.5, 1.5, 3]) compress the range; dividing by the mean rank
    and multiplying by the mean planar area keeps the total displayed area
    roughly where it was.

    Args:
        layer (gpd.GeoDataFrame): Projected polygons with a weight column
        column (str): Name of the weight column

    Returns:
        gpd.GeoDataFrame: Copy of layer with the rescaled weights
    """
    out = layer.copy()
    if out.empty:
        return out

    ranks = rankdata(out[column].to_numpy(dtype=float), method="average")
    mean_area = float(np.mean(out.geometry.area.to_numpy()))
    out[column] = ranks / ranks.mean() * mean_area

    log.debug("Rank-scaled %d weights, mean area %.4g", len(out), mean_area)
    return out
