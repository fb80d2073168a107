"""Compositing of a drawn RGBA layer into a tile buffer.

Separable blend modes follow the Porter-Duff "source over" model:

    Dca' = Sa * Da * B(Cs, Cd) + Sca * (1 - Da) + Dca * (1 - Sa)
    Da'  = Sa + Da - Sa * Da

Only pixels where the layer has non-zero alpha are touched, so untouched
pixels keep their exact value.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from shared.constants import CombineMode

BlendFn = Callable[[np.ndarray, np.ndarray], np.ndarray]

_BLEND: dict[CombineMode, BlendFn] = {
    CombineMode.NORMAL: lambda cs, cd: cs,
    CombineMode.MULTIPLY: lambda cs, cd: cs * cd,
    CombineMode.ADD: lambda cs, cd: np.minimum(cs + cd, 1.0),
    CombineMode.SUBTRACT: lambda cs, cd: np.maximum(cd - cs, 0.0),
    CombineMode.DIFF: lambda cs, cd: np.abs(cs - cd),
    CombineMode.LIGHTEN: np.maximum,
    CombineMode.DARKEN: np.minimum,
    CombineMode.SCREEN: lambda cs, cd: cs + cd - cs * cd,
}


def combine(
    dst: np.ndarray,
    src: np.ndarray,
    mode: CombineMode | str = CombineMode.NORMAL,
) -> np.ndarray:
    """
    Composite src over dst and return the result as a new array.

    Args:
        dst: Existing pixels, uint8 array (H, W, 4)
        src: Drawn layer of the same shape
        mode: Combine mode; NONE copies drawn pixels verbatim

    Returns:
        uint8 array (H, W, 4)

    """
    mode = CombineMode(mode)
    if dst.shape != src.shape:
        msg = f'Shape mismatch: {dst.shape} vs {src.shape}'
        raise ValueError(msg)

    out = dst.copy()
    mask = src[..., 3] > 0
    if not mask.any():
        return out

    if mode is CombineMode.NONE:
        out[mask] = src[mask]
        return out

    s = src[mask].astype(np.float64) / 255.0
    d = dst[mask].astype(np.float64) / 255.0
    sa = s[:, 3:4]
    da = d[:, 3:4]
    cs = s[:, :3]
    cd = d[:, :3]

    blended = _BLEND[mode](cs, cd)
    co = sa * da * blended + sa * (1.0 - da) * cs + da * (1.0 - sa) * cd
    ao = sa + da - sa * da

    rgb = np.divide(co, ao, out=np.zeros_like(co), where=ao > 0)
    result = np.concatenate([rgb, ao], axis=1)
    out[mask] = np.rint(np.clip(result, 0.0, 1.0) * 255.0).astype(np.uint8)
    return out
