import io

from PIL import Image, ImageDraw

from media_gateway.composition.compositor import Layer, encode, flatten
from media_gateway.composition.config import CompositionConfig
from media_gateway.composition.geometry import LogoPlacement, Rect, WatermarkPlacement, plan_canvas, rotated_bounds
from media_gateway.composition.render import attention_centering, render_logo, render_subject, render_watermark


def _busy_right_side() -> Image.Image:
    image = Image.new("RGB", (300, 100), "white")
    draw = ImageDraw.Draw(image)
    for x in range(220, 280, 6):
        draw.rectangle([x, 20, x + 2, 80], fill="black")
    return image


def test_attention_crop_follows_detail() -> None:
    centering = attention_centering(_busy_right_side(), (100, 100))
    assert centering[0] > 0.5
    assert centering[1] == 0.5


def test_attention_crop_centres_flat_images() -> None:
    assert attention_centering(Image.new("RGB", (300, 100), "white"), (100, 100)) == (0.5, 0.5)


def test_attention_crop_skips_exact_aspect_ratio() -> None:
    assert attention_centering(Image.new("RGB", (1000, 1000)), (800, 800)) == (0.5, 0.5)


def test_subject_is_cover_fitted_with_alpha() -> None:
    layer = render_subject(_busy_right_side(), Rect(0, 0, 80, 80))
    assert layer.size == (80, 80)
    assert layer.mode == "RGBA"
    # crop anchored on the stripes, so dark pixels survive
    assert min(layer.convert("L").getdata()) < 100


def test_watermark_resized_without_rotation() -> None:
    placement = WatermarkPlacement(250, 50, 0.0, 0.3, Rect(0, 0, 250, 50))
    mark = render_watermark(Image.new("RGB", (500, 100), "red"), placement)
    assert mark.size == (250, 50)
    assert mark.mode == "RGBA"


def test_diagonal_watermark_has_transparent_corners() -> None:
    placement = WatermarkPlacement(200, 200, 45.0, 0.3, Rect(0, 0, 0, 0))
    mark = render_watermark(Image.new("RGB", (200, 200), "red"), placement)
    assert mark.size == rotated_bounds((200, 200), 45)
    assert mark.getpixel((0, 0))[3] == 0
    center = (mark.width // 2, mark.height // 2)
    r, g, b, a = mark.getpixel(center)
    assert a == 255 and r > 250 and g < 5


def test_logo_resized_to_planned_rect() -> None:
    rect = Rect(200, 800, 400, 200)
    placement = LogoPlacement(rect, rect, (0.0, 0.0, 100.0, 50.0))
    logo = render_logo(Image.new("RGBA", (100, 50), (0, 0, 255, 255)), placement)
    assert logo.size == (400, 200)
    assert logo.getpixel((200, 100)) == (0, 0, 255, 255)


def test_logo_renders_only_visible_rows_of_tall_source() -> None:
    source = Image.new("RGBA", (4, 1000), (255, 0, 0, 255))
    source.paste((0, 255, 0, 255), (0, 491, 4, 501))
    placement = plan_canvas(CompositionConfig(layout="sheet"), (800, 800), source.size).logo

    logo = render_logo(source, placement)

    assert logo.size == (400, 1000)
    r, g, b, a = logo.getpixel((200, 500))
    assert g > 200 and r < 50


def test_flatten_paints_in_order_on_white() -> None:
    red = Image.new("RGBA", (40, 40), (255, 0, 0, 255))
    blue = Image.new("RGBA", (20, 20), (0, 0, 255, 255))
    canvas = flatten([Layer(red, 0, 0), Layer(blue, 10, 10)], (60, 60))
    assert canvas.size == (60, 60)
    assert canvas.getpixel((5, 5)) == (255, 0, 0, 255)
    assert canvas.getpixel((15, 15)) == (0, 0, 255, 255)
    assert canvas.getpixel((55, 55)) == (255, 255, 255, 255)


def test_flatten_clips_layers_hanging_off_canvas() -> None:
    red = Image.new("RGBA", (100, 100), (255, 0, 0, 255))
    canvas = flatten([Layer(red, -50, -50)], (80, 80))
    assert canvas.getpixel((0, 0)) == (255, 0, 0, 255)
    assert canvas.getpixel((49, 49)) == (255, 0, 0, 255)
    assert canvas.getpixel((50, 50)) == (255, 255, 255, 255)


def test_flatten_ignores_layers_entirely_off_canvas() -> None:
    red = Image.new("RGBA", (10, 10), (255, 0, 0, 255))
    canvas = flatten([Layer(red, 500, 500)], (20, 20))
    assert canvas.getextrema()[1] == (255, 255)


def test_zero_opacity_contributes_nothing() -> None:
    red = Image.new("RGBA", (20, 20), (255, 0, 0, 255))
    canvas = flatten([Layer(red, 0, 0, opacity=0.0)], (20, 20))
    assert canvas.convert("RGB").getextrema() == ((255, 255), (255, 255), (255, 255))


def test_partial_opacity_blends_with_background() -> None:
    red = Image.new("RGBA", (20, 20), (255, 0, 0, 255))
    canvas = flatten([Layer(red, 0, 0, opacity=0.5)], (20, 20))
    r, g, b, a = canvas.getpixel((10, 10))
    assert (r, a) == (255, 255)
    assert 120 <= g <= 135 and 120 <= b <= 135
    # opacity is applied to a copy, the raster itself is untouched
    assert red.getpixel((0, 0)) == (255, 0, 0, 255)


def test_encode_jpeg_drops_alpha() -> None:
    data = encode(Image.new("RGBA", (10, 10), (255, 255, 255, 255)), "jpeg", 80)
    decoded = Image.open(io.BytesIO(data))
    assert decoded.format == "JPEG"
    assert decoded.mode == "RGB"


def test_encode_png_ignores_quality() -> None:
    image = Image.new("RGBA", (10, 10), (1, 2, 3, 255))
    assert encode(image, "png", 1) == encode(image, "png", 100)
    assert Image.open(io.BytesIO(encode(image, "png", 50))).format == "PNG"
