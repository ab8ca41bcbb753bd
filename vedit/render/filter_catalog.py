"""Filter catalog: symbolic effect name + parameters -> FFmpeg filter expression.

Each effect is one registry entry holding a typed parameter model (defaults,
ranges, enumerations, colors) and a builder that turns validated parameters
into a filter-chain fragment. Loose parameter bags are only accepted at the
boundary (``compile_filter`` / ``apply_filter``) and are validated into the
typed model immediately; unknown keys are rejected.

Usage:
    applied = apply_filter("brightness", {"value": 0.2})
    applied.expression  # "eq=brightness=0.2"
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from vedit.exceptions import InvalidFilterParameterError, UnknownFilterKindError
from vedit.utils.color import parse_color


class FilterKind(str, Enum):
    """Registered effect names."""

    # Color adjustments
    BRIGHTNESS = "brightness"
    CONTRAST = "contrast"
    SATURATION = "saturation"
    HUE = "hue"
    GAMMA = "gamma"
    COLORBALANCE = "colorbalance"
    LEVELS = "levels"
    CURVES = "curves"
    # Stylization
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    VINTAGE = "vintage"
    POSTERIZE = "posterize"
    SOLARIZE = "solarize"
    INVERT = "invert"
    # Blur and sharpen
    BLUR = "blur"
    SHARPEN = "sharpen"
    EDGE = "edge"
    # Distortion and noise
    NOISE = "noise"
    VIGNETTE = "vignette"
    PIXELIZE = "pixelize"
    # Transformation
    ROTATE = "rotate"
    FLIP = "flip"
    CROP = "crop"
    OPACITY = "opacity"
    # Special effects
    EMBOSS = "emboss"
    OVERLAY = "overlay"


def _num(value: float) -> str:
    """Compact number formatting for filter arguments."""
    return format(value, "g")


# =============================================================================
# Parameter models
# =============================================================================


class FilterParams(BaseModel):
    """Base for typed filter parameters."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class NoParams(FilterParams):
    pass


class BrightnessParams(FilterParams):
    value: float = Field(0.0, ge=-1.0, le=1.0)


class ContrastParams(FilterParams):
    value: float = Field(1.0, ge=-1000.0, le=1000.0)


class SaturationParams(FilterParams):
    value: float = Field(1.0, ge=0.0, le=3.0)


class HueParams(FilterParams):
    value: float = Field(0.0, ge=-360.0, le=360.0)


class GammaParams(FilterParams):
    value: float = Field(1.0, ge=0.1, le=10.0)


class ColorBalanceParams(FilterParams):
    red: float = Field(0.0, ge=-1.0, le=1.0)
    green: float = Field(0.0, ge=-1.0, le=1.0)
    blue: float = Field(0.0, ge=-1.0, le=1.0)


class LevelsParams(FilterParams):
    in_min: int = Field(0, ge=0, le=255)
    in_max: int = Field(255, ge=0, le=255)
    out_min: int = Field(0, ge=0, le=255)
    out_max: int = Field(255, ge=0, le=255)

    @model_validator(mode="after")
    def _ordered(self) -> "LevelsParams":
        if self.in_min >= self.in_max:
            raise ValueError("in_min must be lower than in_max")
        if self.out_min > self.out_max:
            raise ValueError("out_min must not exceed out_max")
        return self


CurvesPreset = Literal[
    "none",
    "color_negative",
    "cross_process",
    "darker",
    "increase_contrast",
    "lighter",
    "linear_contrast",
    "medium_contrast",
    "negative",
    "strong_contrast",
    "vintage",
]


class CurvesParams(FilterParams):
    preset: CurvesPreset = "none"


class PosterizeParams(FilterParams):
    value: int = Field(8, ge=2, le=256)


class SolarizeParams(FilterParams):
    value: float = Field(0.5, ge=0.0, le=1.0)


class BlurParams(FilterParams):
    value: float = Field(5.0, gt=0.0, le=100.0)


class SharpenParams(FilterParams):
    value: float = Field(1.0, ge=-2.0, le=5.0)


class EdgeParams(FilterParams):
    low: float = Field(0.1, ge=0.0, le=1.0)
    high: float = Field(0.4, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _ordered(self) -> "EdgeParams":
        if self.low > self.high:
            raise ValueError("low must not exceed high")
        return self


class NoiseParams(FilterParams):
    value: int = Field(10, ge=0, le=100)


class VignetteParams(FilterParams):
    # Angle is PI/value; FFmpeg caps the angle at PI/2
    value: float = Field(5.0, ge=2.0, le=100.0)


class PixelizeParams(FilterParams):
    value: int = Field(8, ge=1, le=1024)


class RotateParams(FilterParams):
    value: float = Field(0.0, ge=-360.0, le=360.0)


class FlipParams(FilterParams):
    direction: Literal["horizontal", "vertical"] = "horizontal"


class CropParams(FilterParams):
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    x: int = Field(0, ge=0)
    y: int = Field(0, ge=0)


class OpacityParams(FilterParams):
    value: float = Field(1.0, ge=0.0, le=1.0)


class OverlayParams(FilterParams):
    color: str = "#000000"
    opacity: float = Field(0.5, ge=0.0, le=1.0)

    @field_validator("color")
    @classmethod
    def _color(cls, value: str) -> str:
        parse_color(value)
        return value


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class FilterSpec:
    """One catalog entry."""

    kind: FilterKind
    params_model: type[FilterParams]
    build: Callable[[Any], str]
    description: str = ""
    # Parameter a bare scalar value is bound to; None when the kind has no primary parameter
    primary: str | None = "value"
    # Parses legacy compact strings ("r,g,b", "w:h:x:y", ...) into a parameter bag
    parse_scalar: Callable[[Any], dict[str, Any]] | None = None


FILTER_REGISTRY: dict[FilterKind, FilterSpec] = {}


def register(
    kind: FilterKind,
    params_model: type[FilterParams],
    description: str = "",
    *,
    primary: str | None = "value",
    parse_scalar: Callable[[Any], dict[str, Any]] | None = None,
) -> Callable[[Callable[[Any], str]], Callable[[Any], str]]:
    """Register a filter builder for ``kind``."""

    def decorator(build: Callable[[Any], str]) -> Callable[[Any], str]:
        FILTER_REGISTRY[kind] = FilterSpec(
            kind=kind,
            params_model=params_model,
            build=build,
            description=description,
            primary=primary,
            parse_scalar=parse_scalar,
        )
        return build

    return decorator


def _split_scalar(separator: str, names: tuple[str, ...]) -> Callable[[Any], dict[str, Any]]:
    def parse(raw: Any) -> dict[str, Any]:
        parts = [p.strip() for p in str(raw).split(separator)]
        if len(parts) != len(names):
            raise ValueError(f"expected {len(names)} values separated by '{separator}'")
        return dict(zip(names, parts))

    return parse


def _parse_overlay_scalar(raw: Any) -> dict[str, Any]:
    color, sep, opacity = str(raw).partition("@")
    bag: dict[str, Any] = {"color": color.strip()}
    if sep:
        bag["opacity"] = opacity.strip()
    return bag


def _parse_edge_scalar(raw: Any) -> dict[str, Any]:
    return {"low": raw, "high": raw}


# Color adjustments


@register(FilterKind.BRIGHTNESS, BrightnessParams, "Brightness offset (-1..1)")
def _brightness(p: BrightnessParams) -> str:
    return f"eq=brightness={_num(p.value)}"


@register(FilterKind.CONTRAST, ContrastParams, "Contrast multiplier")
def _contrast(p: ContrastParams) -> str:
    return f"eq=contrast={_num(p.value)}"


@register(FilterKind.SATURATION, SaturationParams, "Saturation multiplier (0..3)")
def _saturation(p: SaturationParams) -> str:
    return f"eq=saturation={_num(p.value)}"


@register(FilterKind.HUE, HueParams, "Hue rotation in degrees")
def _hue(p: HueParams) -> str:
    return f"hue=h={_num(p.value)}"


@register(FilterKind.GAMMA, GammaParams, "Gamma (0.1..10)")
def _gamma(p: GammaParams) -> str:
    return f"eq=gamma={_num(p.value)}"


@register(
    FilterKind.COLORBALANCE,
    ColorBalanceParams,
    "Shadow color balance per channel",
    primary=None,
    parse_scalar=_split_scalar(",", ("red", "green", "blue")),
)
def _colorbalance(p: ColorBalanceParams) -> str:
    return f"colorbalance=rs={_num(p.red)}:gs={_num(p.green)}:bs={_num(p.blue)}"


@register(
    FilterKind.LEVELS,
    LevelsParams,
    "Input/output levels (0..255)",
    primary=None,
    parse_scalar=_split_scalar("/", ("in_min", "in_max", "out_min", "out_max")),
)
def _levels(p: LevelsParams) -> str:
    imin = _num(round(p.in_min / 255, 4))
    imax = _num(round(p.in_max / 255, 4))
    omin = _num(round(p.out_min / 255, 4))
    omax = _num(round(p.out_max / 255, 4))
    parts = []
    for channel in ("r", "g", "b"):
        parts.append(
            f"{channel}imin={imin}:{channel}imax={imax}:{channel}omin={omin}:{channel}omax={omax}"
        )
    return "colorlevels=" + ":".join(parts)


@register(FilterKind.CURVES, CurvesParams, "Tone curve preset", primary="preset")
def _curves(p: CurvesParams) -> str:
    return f"curves=preset={p.preset}"


# Stylization


@register(FilterKind.GRAYSCALE, NoParams, "Remove color", primary=None)
def _grayscale(p: NoParams) -> str:
    return "hue=s=0"


@register(FilterKind.SEPIA, NoParams, "Sepia tone", primary=None)
def _sepia(p: NoParams) -> str:
    return "colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131:0"


@register(FilterKind.VINTAGE, NoParams, "Vintage curve", primary=None)
def _vintage(p: NoParams) -> str:
    return "curves=preset=vintage"


@register(FilterKind.POSTERIZE, PosterizeParams, "Color levels per channel (2..256)")
def _posterize(p: PosterizeParams) -> str:
    step = _num(round(256 / p.value, 4))
    expr = f"floor(val/{step})*{step}"
    return f"lutrgb=r={expr}:g={expr}:b={expr}"


@register(FilterKind.SOLARIZE, SolarizeParams, "Invert tones above a threshold (0..1)")
def _solarize(p: SolarizeParams) -> str:
    threshold = round(p.value * 255)
    expr = f"'if(gt(val,{threshold}),255-val,val)'"
    return f"lutrgb=r={expr}:g={expr}:b={expr}"


@register(FilterKind.INVERT, NoParams, "Negative image", primary=None)
def _invert(p: NoParams) -> str:
    return "negate"


# Blur and sharpen


@register(FilterKind.BLUR, BlurParams, "Gaussian blur sigma")
def _blur(p: BlurParams) -> str:
    return f"gblur=sigma={_num(p.value)}"


@register(FilterKind.SHARPEN, SharpenParams, "Unsharp mask amount (-2..5)")
def _sharpen(p: SharpenParams) -> str:
    return f"unsharp=5:5:{_num(p.value)}:5:5:0"


@register(
    FilterKind.EDGE,
    EdgeParams,
    "Edge detection thresholds (0..1)",
    primary=None,
    parse_scalar=_parse_edge_scalar,
)
def _edge(p: EdgeParams) -> str:
    return f"edgedetect=mode=colormix:high={_num(p.high)}:low={_num(p.low)}"


# Distortion and noise


@register(FilterKind.NOISE, NoiseParams, "Temporal noise strength (0..100)")
def _noise(p: NoiseParams) -> str:
    return f"noise=alls={p.value}:allf=t"


@register(FilterKind.VIGNETTE, VignetteParams, "Vignette angle divisor (PI/value)")
def _vignette(p: VignetteParams) -> str:
    return f"vignette=PI/{_num(p.value)}"


@register(FilterKind.PIXELIZE, PixelizeParams, "Block size in pixels")
def _pixelize(p: PixelizeParams) -> str:
    return f"pixelize=w={p.value}:h={p.value}"


# Transformation


@register(FilterKind.ROTATE, RotateParams, "Rotation in degrees")
def _rotate(p: RotateParams) -> str:
    return f"rotate={_num(p.value)}*PI/180"


@register(FilterKind.FLIP, FlipParams, "Mirror horizontally or vertically", primary="direction")
def _flip(p: FlipParams) -> str:
    return "hflip" if p.direction == "horizontal" else "vflip"


@register(
    FilterKind.CROP,
    CropParams,
    "Crop rectangle width:height:x:y",
    primary=None,
    parse_scalar=_split_scalar(":", ("width", "height", "x", "y")),
)
def _crop(p: CropParams) -> str:
    return f"crop={p.width}:{p.height}:{p.x}:{p.y}"


@register(FilterKind.OPACITY, OpacityParams, "Alpha multiplier (0..1)")
def _opacity(p: OpacityParams) -> str:
    return f"format=rgba,colorchannelmixer=aa={_num(p.value)}"


# Special effects


@register(FilterKind.EMBOSS, NoParams, "Emboss convolution", primary=None)
def _emboss(p: NoParams) -> str:
    return "convolution='-2 -1 0 -1 1 1 0 1 2'"


@register(
    FilterKind.OVERLAY,
    OverlayParams,
    "Solid color tint (color@opacity)",
    primary=None,
    parse_scalar=_parse_overlay_scalar,
)
def _overlay(p: OverlayParams) -> str:
    r, g, b, _ = parse_color(p.color)
    return f"drawbox=x=0:y=0:w=iw:h=ih:color=0x{r:02X}{g:02X}{b:02X}@{_num(p.opacity)}:t=fill"


# =============================================================================
# Boundary
# =============================================================================


@dataclass(frozen=True)
class AppliedFilter:
    """Result of applying a filter: a fresh instance id plus the compiled expression."""

    filter_id: str
    kind: FilterKind
    params: dict[str, Any]
    expression: str


def resolve_kind(name: str | FilterKind) -> FilterKind:
    """Look up a filter kind by (case-insensitive) name."""
    if isinstance(name, FilterKind):
        return name
    try:
        return FilterKind(str(name).strip().lower())
    except ValueError:
        raise UnknownFilterKindError(str(name)) from None


def _to_bag(spec: FilterSpec, params: Any) -> dict[str, Any]:
    """Normalize a loose parameter value into a key/value bag."""
    if params is None:
        return {}
    if isinstance(params, Mapping):
        return {str(k): v for k, v in params.items()}
    if spec.parse_scalar is not None:
        return spec.parse_scalar(params)
    if spec.primary is not None:
        return {spec.primary: params}
    # Parameterless effects only take a bare on switch ("1", true)
    if params is True or params == "1":
        return {}
    raise ValueError(f"{spec.kind.value} takes no parameters")


def compile_filter(name: str | FilterKind, params: Any = None) -> tuple[FilterKind, dict[str, Any], str]:
    """Validate ``params`` for filter ``name`` and build its expression.

    Returns:
        (kind, original parameter bag, expression)

    Raises:
        UnknownFilterKindError: If ``name`` is not registered
        InvalidFilterParameterError: If a parameter fails to parse or validate
    """
    kind = resolve_kind(name)
    spec = FILTER_REGISTRY[kind]

    try:
        bag = _to_bag(spec, params)
    except ValueError as e:
        raise InvalidFilterParameterError(kind.value, "value", params, reason=str(e)) from None

    try:
        typed = spec.params_model.model_validate(bag)
    except PydanticValidationError as e:
        error = e.errors()[0]
        loc = error.get("loc") or ()
        parameter = str(loc[0]) if loc else (spec.primary or "params")
        value = bag.get(parameter, error.get("input")) if loc else bag
        raise InvalidFilterParameterError(kind.value, parameter, value, reason=error.get("msg")) from None

    return kind, bag, spec.build(typed)


def apply_filter(name: str | FilterKind, params: Any = None) -> AppliedFilter:
    """Compile a filter and mint a new instance id for it."""
    kind, bag, expression = compile_filter(name, params)
    return AppliedFilter(
        filter_id=str(uuid4()),
        kind=kind,
        params=bag,
        expression=expression,
    )


def list_filters() -> list[dict[str, Any]]:
    """Describe every registered filter with its parameter defaults."""
    catalog = []
    for kind, spec in FILTER_REGISTRY.items():
        defaults = {
            name: (None if field.is_required() else field.default)
            for name, field in spec.params_model.model_fields.items()
        }
        catalog.append(
            {
                "name": kind.value,
                "description": spec.description,
                "parameters": defaults,
            }
        )
    return catalog
