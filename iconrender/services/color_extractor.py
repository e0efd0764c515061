from __future__ import annotations

import colorsys
import math
from typing import Dict, List

import numpy as np
from PIL import Image

from iconrender.services.render_config import RGB

DEFAULT_SAMPLES = 20
_BLACK: RGB = (0, 0, 0)


def find_dominant_color_by_hue(image: Image.Image, samples: int = DEFAULT_SAMPLES) -> RGB:
    """按色相直方图取主色。

    第一轮：按步长采样像素，丢弃半透明像素（alpha < 128），以 饱和度*明度 为权重累加到 360 个色相桶，
    取得分最高的色相；第二轮：只看该色相的采样像素，按 (s, v) 分桶累加，得分最高的桶中最后出现的颜色胜出。
    """
    width, height = image.size
    if width == 0 or height == 0:
        return _BLACK
    pixels = np.asarray(image if image.mode == "RGBA" else image.convert("RGBA"))
    stride = max(int(math.sqrt((width * height) / samples)), 1)

    hue_scores = [0.0] * 360
    high_score = -1.0
    best_hue = -1
    collected: List[RGB] = []
    for y in range(0, height, stride):
        for x in range(0, width, stride):
            r, g, b, a = (int(v) for v in pixels[y, x])
            if a < 0x80:
                continue
            h, s, v = colorsys.rgb_to_hsv(r / 255, g / 255, b / 255)
            hue = int(h * 360)
            if hue < 0 or hue >= 360:
                continue
            if len(collected) < samples:
                collected.append((r, g, b))
            hue_scores[hue] += s * v
            if hue_scores[hue] > high_score:
                high_score = hue_scores[hue]
                best_hue = hue

    bucket_scores: Dict[int, float] = {}
    best_color = _BLACK
    high_score = -1.0
    for rgb in collected:
        h, s, v = colorsys.rgb_to_hsv(*(c / 255 for c in rgb))
        if int(h * 360) != best_hue:
            continue
        bucket = int(s * 100) + int(v * 10000)
        total = bucket_scores.get(bucket, 0.0) + s * v
        bucket_scores[bucket] = total
        if total > high_score:
            high_score = total
            # 同一个桶里的颜色非常接近，后出现的覆盖先出现的
            best_color = rgb
    return best_color


def to_hex(color: RGB) -> str:
    r, g, b = color
    return f"#{r:02X}{g:02X}{b:02X}"


__all__ = ["DEFAULT_SAMPLES", "find_dominant_color_by_hue", "to_hex"]
