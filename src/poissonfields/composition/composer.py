from __future__ import annotations

from collections.abc import Sequence
from io import BytesIO

from PIL import Image, ImageOps

from poissonfields.config import BackgroundMode
from poissonfields.errors import RenderError
from poissonfields.models import CollageOutput, LayoutResult, PlacedImage


def compose(
    layout: LayoutResult | Sequence[PlacedImage],
    canvas_size: tuple[int, int] = (900, 450),
    background: Image.Image | None = None,
    background_mode: BackgroundMode = "cover",
    background_scale: float = 0.2,
    background_color: str = "#0b0d1a",
    label: str = "",
) -> CollageOutput:
    """Render placed images over a background and encode the result as PNG.

    The background is drawn first, then every placed image in sequence
    order, so later images occlude earlier ones where fallback placements
    overlap. Each image is scaled, rotated clockwise by its transform's
    rotation, and pasted centered on its assigned position using its alpha
    channel as the mask. Parts falling outside the canvas are clipped.

    Background modes:
        cover: Scale to fill the canvas and center-crop the overflow.
        stretch: Resize to the canvas, ignoring aspect ratio.
        scale: Resize by ``background_scale`` and paste at the origin over
            ``background_color``.

    Args:
        layout: Placement result, or the placed images directly.
        canvas_size: ``(width, height)`` in pixels.
        background: Optional background image. ``background_color`` is
            used when omitted.
        background_mode: How ``background`` is fitted to the canvas.
        background_scale: Resize factor for the ``"scale"`` mode.
        background_color: Solid fill under (or instead of) the background.
        label: Caption label recorded on the output.

    Returns:
        A ``CollageOutput`` with the RGB image, its PNG bytes, and one
        provenance record per placed image.

    Raises:
        RenderError: If drawing or encoding fails. No partial output is
            returned.
    """
    placed = layout.placed if isinstance(layout, LayoutResult) else tuple(layout)
    width, height = canvas_size

    try:
        canvas = _draw_background(
            canvas_size, background, background_mode, background_scale, background_color
        )
        provenance: list[dict] = []
        for p in placed:
            _draw_placed(canvas, p)
            provenance.append(
                {
                    "source": p.item.asset.source,
                    "position": [round(p.x, 2), round(p.y, 2)],
                    "radius": round(p.radius, 2),
                    "rotation": round(p.rotation, 2),
                    "scale": round(p.item.transform.scale, 4),
                    "degraded": p.degraded,
                }
            )

        image = canvas.convert("RGB")
        buf = BytesIO()
        image.save(buf, format="PNG")
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise RenderError(f"failed to render {width}×{height} collage: {exc}") from exc

    return CollageOutput(
        image=image,
        buffer=buf.getvalue(),
        width=width,
        height=height,
        label=label,
        placements=provenance,
    )


def _draw_background(
    canvas_size: tuple[int, int],
    background: Image.Image | None,
    mode: BackgroundMode,
    scale: float,
    color: str,
) -> Image.Image:
    """Build the RGBA base canvas from the configured background."""
    width, height = canvas_size
    if background is None:
        return Image.new("RGBA", (width, height), color)

    bg = background.convert("RGBA")
    match mode:
        case "cover":
            return ImageOps.fit(bg, (width, height), Image.Resampling.LANCZOS)
        case "stretch":
            return bg.resize((width, height), Image.Resampling.LANCZOS)
        case "scale":
            canvas = Image.new("RGBA", (width, height), color)
            size = (max(1, round(bg.width * scale)), max(1, round(bg.height * scale)))
            resized = bg.resize(size, Image.Resampling.LANCZOS)
            canvas.paste(resized, (0, 0), mask=resized.getchannel("A"))
            return canvas
        case _:
            raise ValueError(f"unknown background mode {mode!r}")


def _draw_placed(canvas: Image.Image, placed: PlacedImage) -> None:
    """Scale, rotate and paste one image centered on its position."""
    asset = placed.item.asset
    scaled_w, scaled_h = placed.item.scaled_size
    size = (max(1, round(scaled_w)), max(1, round(scaled_h)))

    img = asset.image.resize(size, Image.Resampling.LANCZOS)
    # PIL rotates counter-clockwise for positive angles.
    img = img.rotate(-placed.rotation, resample=Image.Resampling.BICUBIC, expand=True)

    left = round(placed.x - img.width / 2)
    top = round(placed.y - img.height / 2)
    canvas.paste(img, (left, top), mask=img.getchannel("A"))
