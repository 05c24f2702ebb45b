"""ffmpeg expression builders used by the graph compiler."""
from __future__ import annotations

from typing import Dict, List, Optional

from clipforge.video_timeline.models import MIN_TRANSITION_DURATION, TextOverlay, Transition, VideoFilter

AUDIO_SAMPLE_RATE = 48000
AUDIO_LAYOUT = "stereo"
# Font sizes are authored against a preview this many pixels wide.
TEXT_REFERENCE_WIDTH = 600
# A single-clip fade never takes more than this share of the clip.
MAX_FADE_RATIO = 0.5

_XFADE_CATALOG: Dict[str, str] = {
    "fade": "fade",
    "dissolve": "dissolve",
    "cross-dissolve": "dissolve",
    "slide-left": "slideleft",
    "slide-right": "slideright",
    "slide-up": "slideup",
    "slide-down": "slidedown",
    "slide-diagonal-tl": "diagtl",
    "slide-diagonal-tr": "diagtr",
    "wipe-left": "wipeleft",
    "wipe-right": "wiperight",
    "wipe-up": "wipeup",
    "wipe-down": "wipedown",
    "zoom-in": "zoomin",
    "zoom-out": "fadefast",
    "rotate-in": "radial",
    "rotate-out": "radial",
    "circle-wipe": "circleopen",
    "diamond-wipe": "rectcrop",
}

QUALITY_PRESETS: Dict[str, Dict[str, str]] = {
    "high": {"crf": "18", "preset": "slow"},
    "medium": {"crf": "23", "preset": "medium"},
    "low": {"crf": "28", "preset": "veryfast"},
}

CONTAINER_CODECS: Dict[str, Dict[str, str]] = {
    "mp4": {"vcodec": "libx264", "acodec": "aac"},
    "webm": {"vcodec": "libvpx-vp9", "acodec": "libopus"},
}


def fmt_num(value: float) -> str:
    """Compact decimal for filter arguments (no exponent, no trailing zeros)."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def xfade_name(transition_type: str) -> str:
    return _XFADE_CATALOG.get(transition_type, "fade")


def video_normalize_filters(fps: int) -> List[str]:
    """Frame rate, time base, pixel aspect and format shared by every video node."""
    return [f"fps={fps}", f"settb=1/{fps}", "setsar=1", "format=yuv420p"]


def audio_normalize_filters() -> List[str]:
    return [f"aformat=sample_rates={AUDIO_SAMPLE_RATE}:channel_layouts={AUDIO_LAYOUT}"]


def silence_filter(duration: float) -> str:
    return f"aevalsrc=0:c={AUDIO_LAYOUT}:s={AUDIO_SAMPLE_RATE}:d={fmt_num(duration)}"


def color_source_filter(width: int, height: int, duration: float, fps: int, color: str = "black") -> str:
    return f"color=c={color}:s={width}x{height}:d={fmt_num(duration)}:r={fps}"


def fit_filters(width: int, height: int) -> List[str]:
    return [
        f"scale={width}:{height}:force_original_aspect_ratio=decrease",
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black",
    ]


def crop_filter(x: float, y: float, w: float, h: float) -> str:
    return (
        f"crop=iw*{fmt_num(w / 100)}:ih*{fmt_num(h / 100)}"
        f":iw*{fmt_num(x / 100)}:ih*{fmt_num(y / 100)}"
    )


def color_filters(video_filter: Optional[VideoFilter]) -> List[str]:
    if video_filter is None or video_filter.is_neutral:
        return []
    filters: List[str] = []
    eq_parts = []
    if video_filter.brightness:
        eq_parts.append(f"brightness={fmt_num(video_filter.brightness / 100)}")
    if video_filter.contrast:
        eq_parts.append(f"contrast={fmt_num(1 + video_filter.contrast / 100)}")
    if video_filter.saturation:
        eq_parts.append(f"saturation={fmt_num(1 + video_filter.saturation / 100)}")
    if eq_parts:
        filters.append("eq=" + ":".join(eq_parts))
    if video_filter.grayscale:
        filters.append("hue=s=0")
    if video_filter.sepia:
        filters.append("colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131")
    if video_filter.blur > 0:
        filters.append(f"boxblur={fmt_num(video_filter.blur)}:1")
    return filters


def fade_duration(transition: Transition, clip_duration: float) -> float:
    return max(MIN_TRANSITION_DURATION, min(transition.duration, clip_duration * MAX_FADE_RATIO))


def single_clip_fade_filters(transition: Transition, clip_duration: float) -> List[str]:
    """Fade a clip in (``start``) or out (``end``) when there is no neighbour to blend with.

    Rotations spin the frame in or out while fading; every other type is a plain fade.
    """
    if transition.type == "none":
        return []
    d = fade_duration(transition, clip_duration)
    rotating = transition.type in ("rotate-in", "rotate-out")
    if transition.position == "start":
        fade = f"fade=t=in:st=0:d={fmt_num(d)}"
        if rotating:
            angle = f"if(lt(t,{fmt_num(d)}),PI*(1-t/{fmt_num(d)}),0)"
            return ["format=yuva444p", f"rotate=a='{angle}':c=black@0:ow=iw:oh=ih", "format=yuv420p", fade]
        return [fade]
    start = max(0.0, clip_duration - d)
    fade = f"fade=t=out:st={fmt_num(start)}:d={fmt_num(d)}"
    if rotating:
        angle = f"if(gt(t,{fmt_num(start)}),PI*(t-{fmt_num(start)})/{fmt_num(d)},0)"
        return ["format=yuva444p", f"rotate=a='{angle}':c=black@0:ow=iw:oh=ih", "format=yuv420p", fade]
    return [fade]


def single_clip_audio_fade_filters(transition: Transition, clip_duration: float) -> List[str]:
    if transition.type == "none":
        return []
    d = fade_duration(transition, clip_duration)
    if transition.position == "start":
        return [f"afade=t=in:st=0:d={fmt_num(d)}"]
    return [f"afade=t=out:st={fmt_num(max(0.0, clip_duration - d))}:d={fmt_num(d)}"]


def xfade_filter(transition: Transition, duration: float, offset: float) -> str:
    return f"xfade=transition={xfade_name(transition.type)}:duration={fmt_num(duration)}:offset={fmt_num(offset)}"


def acrossfade_filter(duration: float) -> str:
    return f"acrossfade=d={fmt_num(duration)}:c1=tri:c2=tri"


def escape_drawtext(text: str) -> str:
    """Escape text for a single-quoted drawtext argument inside a filtergraph."""
    return (
        text.replace("\\", "\\\\\\\\")
        .replace("'", "\\'")
        .replace(":", "\\:")
        .replace("[", "\\[")
        .replace("]", "\\]")
        .replace("%", "\\\\%")
    )


def _ffmpeg_color(hex_color: str) -> str:
    return "0x" + hex_color.lstrip("#")


def drawtext_filter(
    overlay: TextOverlay,
    width: int,
    height: int,
    start: float,
    end: float,
    font_path: str,
) -> str:
    """drawtext for one overlay; (x, y) in percent is the centre of the text."""
    font_size = max(1, round(overlay.font_size * width / TEXT_REFERENCE_WIDTH))
    cx = round(overlay.x / 100 * width)
    cy = round(overlay.y / 100 * height)
    parts = [
        f"fontfile='{font_path}'",
        f"text='{escape_drawtext(overlay.text)}'",
        f"fontsize={font_size}",
        f"fontcolor={_ffmpeg_color(overlay.color)}",
        f"x={cx}-tw/2",
        f"y={cy}-th/2",
    ]
    if overlay.background_color:
        parts.extend(["box=1", f"boxcolor={_ffmpeg_color(overlay.background_color)}@0.5", "boxborderw=5"])
    parts.append(f"enable='gte(t,{fmt_num(start)})*lt(t,{fmt_num(end)})'")
    return "drawtext=" + ":".join(parts)
