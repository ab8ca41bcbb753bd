"""Text overlays: font resolution and drawtext filter construction.

Position is measured from the canvas center, like every other overlay. The
alignment decides which edge of the text box sits on that point.
"""

import logging
from functools import lru_cache

from PIL import ImageFont

from vedit.config import get_settings
from vedit.schemas.timeline import TextSegment
from vedit.utils.color import is_transparent, to_ffmpeg_color
from vedit.utils.ffmpeg_expr import between, fmt, local_time, piecewise_linear

logger = logging.getLogger(__name__)

# Family -> candidate font files, tried in order. Bare file names are looked up
# in the platform font directories by Pillow.
FONT_ALIASES: dict[str, list[str]] = {
    "Arial": ["arial.ttf", "Arial.ttf", "LiberationSans-Regular.ttf", "DejaVuSans.ttf"],
    "Times New Roman": ["times.ttf", "Times New Roman.ttf", "LiberationSerif-Regular.ttf", "DejaVuSerif.ttf"],
    "Courier New": ["cour.ttf", "Courier New.ttf", "LiberationMono-Regular.ttf", "DejaVuSansMono.ttf"],
    "Calibri": ["calibri.ttf", "Carlito-Regular.ttf"],
    "Verdana": ["verdana.ttf", "Verdana.ttf", "DejaVuSans.ttf"],
    "Georgia": ["georgia.ttf", "Georgia.ttf", "gelasio-regular.ttf"],
    "Comic Sans MS": ["comic.ttf", "Comic Sans MS.ttf", "ComicNeue-Regular.ttf"],
    "Impact": ["impact.ttf", "Impact.ttf"],
    "Tahoma": ["tahoma.ttf", "Tahoma.ttf", "DejaVuSans.ttf"],
}

_PROBE_SIZE = 12


def _candidates(family: str) -> list[str]:
    if family in FONT_ALIASES:
        return FONT_ALIASES[family]
    for name, files in FONT_ALIASES.items():
        if name.lower() == family.lower():
            return files
    compact = family.replace(" ", "")
    return [family, f"{family}.ttf", f"{compact}.ttf", f"{compact}-Regular.ttf"]


@lru_cache(maxsize=128)
def resolve_font(family: str | None) -> str:
    """Resolve a font family name to a font file path. Never fails."""
    default = get_settings().default_font_path
    if not family or not family.strip():
        return default

    for candidate in _candidates(family.strip()):
        try:
            font = ImageFont.truetype(candidate, _PROBE_SIZE)
        except OSError:
            continue
        path = getattr(font, "path", None) or candidate
        logger.debug(f"[FONT] {family} -> {path}")
        return str(path)

    logger.info(f"[FONT] No font file found for '{family}', using default {default}")
    return default


def escape_text(text: str) -> str:
    """Escape text for a single-quoted drawtext option inside a filtergraph."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "'\\''")
        .replace(":", "\\:")
        .replace("%", "\\%")
    )


def _escape_path(path: str) -> str:
    return path.replace("\\", "/").replace(":", "\\:").replace("'", "'\\''")


def _animated(segment: TextSegment, prop: str, static: float, time_var: str) -> tuple[str, bool]:
    """Expression for a keyframable property, and whether it varies over time."""
    frames = segment.keyframes.get(prop)
    if frames:
        return piecewise_linear(frames, time_var), True
    return fmt(static), False


def build_drawtext(
    segment: TextSegment,
    *,
    font_file: str,
    offset: float,
    visible: tuple[float, float],
) -> str:
    """
    Build the drawtext filter for one text segment inside one render interval.

    Args:
        segment: Text segment to draw
        font_file: Resolved font file path
        offset: Interval start minus segment start (keyframes use segment-local time)
        visible: Interval-relative (start, end) during which the text is shown

    Returns:
        drawtext filter string (without pad labels)
    """
    t = local_time(offset)

    x_value, _ = _animated(segment, "position_x", segment.position_x or 0, t)
    y_value, _ = _animated(segment, "position_y", segment.position_y or 0, t)
    scale, scale_animated = _animated(segment, "scale", segment.scale, t)
    opacity, opacity_animated = _animated(segment, "opacity", segment.opacity, t)

    if scale_animated:
        fontsize = f"'{segment.font_size}*({scale})'"
    else:
        fontsize = fmt(segment.font_size * segment.scale)

    if segment.alignment == "left":
        x_expr = f"w/2+({x_value})"
    elif segment.alignment == "right":
        x_expr = f"w/2+({x_value})-text_w"
    else:
        x_expr = f"(w-text_w)/2+({x_value})"
    y_expr = f"(h-text_h)/2+({y_value})"

    params = [
        f"drawtext=text='{escape_text(segment.text)}'",
        f"fontfile='{_escape_path(font_file)}'",
        f"fontsize={fontsize}",
        f"fontcolor={to_ffmpeg_color(segment.font_color)}",
        f"x='{x_expr}'",
        f"y='{y_expr}'",
    ]

    if opacity_animated:
        params.append(f"alpha='{opacity}'")
    elif segment.opacity < 1.0:
        params.append(f"alpha={opacity}")

    if not is_transparent(segment.background_color):
        params.append("box=1")
        params.append(f"boxcolor={to_ffmpeg_color(segment.background_color, segment.background_opacity)}")
        if segment.background_h or segment.background_w:
            if segment.background_h == segment.background_w:
                params.append(f"boxborderw={segment.background_h}")
            else:
                params.append(f"boxborderw={segment.background_h}|{segment.background_w}")

    if segment.text_border_width > 0 and not is_transparent(segment.text_border_color):
        params.append(f"borderw={segment.text_border_width}")
        params.append(
            f"bordercolor={to_ffmpeg_color(segment.text_border_color, segment.text_border_opacity)}"
        )

    if not is_transparent(segment.shadow_color) and (segment.shadow_offset_x or segment.shadow_offset_y):
        params.append(f"shadowcolor={to_ffmpeg_color(segment.shadow_color, segment.shadow_opacity)}")
        params.append(f"shadowx={segment.shadow_offset_x}")
        params.append(f"shadowy={segment.shadow_offset_y}")

    params.append(f"enable='{between(*visible)}'")
    return ":".join(params)
