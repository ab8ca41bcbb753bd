"""Color parsing shared by the filter catalog, the text model and the compositor."""

from PIL import ImageColor

TRANSPARENT = "transparent"


def parse_color(value: str) -> tuple[int, int, int, int]:
    """Parse a CSS-style color into an RGBA tuple.

    Accepts color names, ``#RGB``/``#RRGGBB``/``#RRGGBBAA`` hex, FFmpeg style
    ``0xRRGGBB`` hex and the literal ``transparent``.

    Raises:
        ValueError: If the value is not a color.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a color: {value!r}")

    text = value.strip()
    if text.lower() == TRANSPARENT:
        return (0, 0, 0, 0)
    if text.lower().startswith("0x"):
        text = "#" + text[2:]

    rgba = ImageColor.getrgb(text)
    if len(rgba) == 3:
        return (*rgba, 255)
    return rgba


def normalize_color(value: str) -> str:
    """Validate a color and return it in a canonical spelling.

    Named colors are kept as written (lower-cased), hex colors are upper-cased
    with a leading ``#``.
    """
    parse_color(value)
    text = value.strip()
    if text.lower().startswith("0x"):
        return "#" + text[2:].upper()
    if text.startswith("#"):
        return text.upper()
    return text.lower()


def is_transparent(value: str | None) -> bool:
    if value is None:
        return True
    return parse_color(value)[3] == 0


def to_ffmpeg_color(value: str, opacity: float = 1.0) -> str:
    """Format a color for FFmpeg filters as ``0xRRGGBB@alpha``.

    The alpha is the color's own alpha channel multiplied by ``opacity``.
    """
    r, g, b, a = parse_color(value)
    alpha = round((a / 255) * opacity, 4)
    return f"0x{r:02X}{g:02X}{b:02X}@{alpha:g}"
