"""
Render a launcher icon from an image file.
Usage:
    uv run python scripts/render_icon.py --src icon.png --out rendered.png --size 192
    uv run python scripts/render_icon.py --placeholder A --color "#3F51B5" --out a.png
Outputs:
    rendered PNG; with --persist also writes the cache bytes next to it (.bin)
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services import bitmap_codec  # noqa: E402
from iconrender.services.badge_renderer import BadgeSpec  # noqa: E402
from iconrender.services.color_extractor import to_hex  # noqa: E402
from iconrender.services.exceptions import ResourceUnavailableError  # noqa: E402
from iconrender.services.icon_composer import IconComposer  # noqa: E402
from iconrender.services.icon_models import BadgeKind, FlatSource  # noqa: E402
from iconrender.services.render_config import RenderConfig, default_icon_size, parse_color  # noqa: E402
from iconrender.services.resources import decode_image_file  # noqa: E402


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--src", type=Path, help="source image")
    parser.add_argument("--placeholder", help="render a placeholder with this text instead of --src")
    parser.add_argument("--color", default="#607D8B", help="placeholder text color")
    parser.add_argument("--out", type=Path, required=True, help="output PNG path")
    parser.add_argument("--size", type=int, default=None, help="icon size in px")
    parser.add_argument("--shape", default=None, help="circle | square | squircle | rounded[:r]")
    parser.add_argument("--badge", choices=[k.value for k in BadgeKind], default=None)
    parser.add_argument("--no-shadow", action="store_true")
    parser.add_argument("--no-shrink", action="store_true", help="do not wrap non-adaptive icons")
    parser.add_argument("--mono", action="store_true", help="also write the monochrome layer")
    parser.add_argument("--persist", action="store_true", help="also write encoded cache bytes")
    args = parser.parse_args()

    if not args.src and args.placeholder is None:
        raise SystemExit("either --src or --placeholder is required")
    size = args.size or default_icon_size()
    if size <= 0:
        raise SystemExit("size must be positive")

    config = RenderConfig.from_env()
    changes = {}
    if args.shape:
        changes["icon_shape"] = args.shape
    if args.no_shadow:
        changes["shadows_enabled"] = False
    if args.no_shrink:
        changes["shrink_non_adaptive_icons"] = False
    if args.mono:
        changes["mono_icons_enabled"] = True
    config = config.evolve(**changes)

    with IconComposer(size, config) as composer:
        if args.placeholder is not None:
            try:
                _, r, g, b = parse_color(args.color)
            except ValueError as exc:
                raise SystemExit(str(exc))
            info = composer.render_placeholder(args.placeholder, (r, g, b))
        else:
            try:
                image = decode_image_file(args.src)
            except ResourceUnavailableError as exc:
                raise SystemExit(f"Source not readable: {exc}")
            source = FlatSource(image)
            if args.badge:
                info = composer.render_with_badge(source, BadgeSpec(BadgeKind(args.badge)))
            else:
                info = composer.render_default(source)

    if info is None:
        raise SystemExit("icon could not be rendered")

    args.out.parent.mkdir(parents=True, exist_ok=True)
    info.icon.save(args.out)
    print(f"wrote {args.out} size={info.size} color={to_hex(info.color)} scale={info.normalization_scale:.3f}")
    if info.badge is not None:
        badge_out = args.out.with_name(args.out.stem + "_badge.png")
        info.badge.icon.save(badge_out)
        print(f"wrote {badge_out}")
    if info.mono is not None:
        mono_out = args.out.with_name(args.out.stem + "_mono.png")
        info.mono.save(mono_out)
        print(f"wrote {mono_out} luminance_delta={info.luminance_delta}")
    if args.persist:
        data = bitmap_codec.encode(info)
        if data is None:
            print("skip persist: icon cannot be persisted")
        else:
            bin_out = args.out.with_suffix(".bin")
            bin_out.write_bytes(data)
            print(f"wrote {bin_out} ({len(data)} bytes)")


if __name__ == "__main__":
    main()
