"""Small helpers for writing FFmpeg filter expressions."""

from collections.abc import Sequence

from vedit.schemas.timeline import Keyframe


def fmt(value: float) -> str:
    """Format a number for a filter argument (microsecond precision, no trailing zeros)."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def between(start: float, end: float) -> str:
    """Time gate: active while start <= t <= end."""
    return f"between(t,{fmt(start)},{fmt(end)})"


def local_time(offset: float) -> str:
    """Expression for segment-local time, given interval t and the segment's offset into it."""
    if abs(offset) < 1e-9:
        return "t"
    if offset > 0:
        return f"(t+{fmt(offset)})"
    return f"(t-{fmt(-offset)})"


def piecewise_linear(keyframes: Sequence[Keyframe], time_var: str = "t") -> str:
    """
    Build a nested if() expression interpolating linearly between keyframes.

    Holds the first value before the first keyframe and the last value after
    the last one.
    """
    frames = sorted(keyframes, key=lambda k: k.time)
    if not frames:
        raise ValueError("at least one keyframe is required")

    parts: list[str] = []
    for i, kf in enumerate(frames):
        if i == 0:
            if kf.time > 0:
                parts.append(f"if(lt({time_var},{fmt(kf.time)}),{fmt(kf.value)},")
            continue

        prev = frames[i - 1]
        dt = kf.time - prev.time
        if dt > 0:
            dv = kf.value - prev.value
            interp = f"{fmt(prev.value)}+{fmt(dv)}*({time_var}-{fmt(prev.time)})/{fmt(dt)}"
            parts.append(f"if(lt({time_var},{fmt(kf.time)}),{interp},")
        else:
            parts.append(f"if(lt({time_var},{fmt(kf.time)}),{fmt(kf.value)},")

    return "".join(parts) + fmt(frames[-1].value) + ")" * len(parts)
