"""Command line interface for smartmask."""
import argparse
import logging
import sys
from functools import partial
from pathlib import Path
from typing import List, Tuple

import numpy as np

from smartmask.constants import MAX_CANVAS_HEIGHT, MAX_CANVAS_WIDTH
from smartmask.debug_utils import audit_segments, describe_segments, save_stages
from smartmask.raster_ingest import ingest, save_rgba
from smartmask.segmenter import RegionSegmenter
from smartmask.session import EditorSession
from smartmask.types import ImageLoadError, Point, SegmenterConfig, Tool


def parse_point(text: str) -> Point:
    """Parse ``"x,y"``."""
    try:
        x, y = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected x,y but got {text!r}")
    return Point(x, y)


def parse_stroke(tool: Tool, text: str) -> Tuple[Tool, List[Point]]:
    """Parse ``"x1,y1;x2,y2;..."`` into a tool-tagged point list."""
    points = [parse_point(part) for part in text.split(";") if part.strip()]
    if len(points) < 2:
        raise argparse.ArgumentTypeError(f"A stroke needs at least 2 points: {text!r}")
    return tool, points


def parse_indices(text: str) -> List[int]:
    """Parse ``"1,3,4"`` (1-based, as printed by --list)."""
    try:
        return [int(v) for v in text.split(",") if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma-separated numbers but got {text!r}")


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='smartmask',
        description='Segment an image, select regions and export the masked cut-out'
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image path'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        help='Output cut-out PNG path (default: input_cutout.png)'
    )

    parser.add_argument(
        '--mask-output',
        type=str,
        default=None,
        help='Also write the greyscale mask to this path'
    )

    parser.add_argument(
        '--preview',
        type=str,
        default=None,
        help='Also write the tinted selection overlay to this path'
    )

    parser.add_argument(
        '--list',
        action='store_true',
        help='Print the detected segments'
    )

    parser.add_argument(
        '--select',
        type=parse_indices,
        action='append',
        default=[],
        help='Toggle segments by number, e.g. 1,3 (repeatable)'
    )

    parser.add_argument(
        '--select-at',
        type=parse_point,
        action='append',
        default=[],
        help='Toggle the topmost segment under x,y (repeatable)'
    )

    parser.add_argument(
        '--add',
        dest='strokes',
        type=partial(parse_stroke, Tool.ADD),
        action='append',
        default=[],
        help='Add stroke "x1,y1;x2,y2;..." (repeatable, applied in order with --subtract)'
    )

    parser.add_argument(
        '--subtract',
        dest='strokes',
        type=partial(parse_stroke, Tool.SUBTRACT),
        action='append',
        default=[],
        help='Subtract stroke "x1,y1;x2,y2;..." (repeatable)'
    )

    parser.add_argument(
        '--pen-size',
        type=float,
        default=None,
        help='Brush width for strokes, 1-100 (default: 20)'
    )

    parser.add_argument(
        '--border',
        type=float,
        default=0.0,
        help='Border expansion in pixels, 0-20 (default: 0)'
    )

    parser.add_argument(
        '--feather',
        type=float,
        default=0.0,
        help='Feather radius in pixels, 0-20 (default: 0)'
    )

    parser.add_argument(
        '--invert',
        action='store_true',
        help='Invert the final mask'
    )

    parser.add_argument(
        '--colors',
        type=int,
        default=8,
        help='Number of k-means clusters (default: 8)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed for reproducible segmentation'
    )

    parser.add_argument(
        '--no-fit',
        action='store_true',
        help='Keep full image size instead of fitting to 800x600'
    )

    parser.add_argument(
        '--save-stages',
        type=str,
        default=None,
        help='Directory to save segmentation stage debug images'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Verbose logging'
    )

    return parser


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.INFO if parsed_args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    # Resolve input path
    input_path = Path(parsed_args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    # Determine output path
    if parsed_args.output:
        output_path = Path(parsed_args.output)
    else:
        output_path = input_path.with_name(f"{input_path.stem}_cutout.png")

    try:
        image = ingest(input_path, max_size=None if parsed_args.no_fit else (MAX_CANVAS_WIDTH, MAX_CANVAS_HEIGHT))
    except ImageLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Image: {image.width}x{image.height}")

    segmenter = RegionSegmenter(SegmenterConfig(n_clusters=parsed_args.colors), rng=parsed_args.seed)
    session = EditorSession(segmenter=segmenter, max_canvas=None)
    session.load_image(image)

    if session.last_error is not None:
        print(f"Warning: segmentation failed ({session.last_error}); continuing without segments",
              file=sys.stderr)
    print(f"Found {len(session.segments)} segments")

    if parsed_args.save_stages and session.stages is not None:
        written = save_stages(session.stages, Path(parsed_args.save_stages))
        print(f"Debug stages saved to: {parsed_args.save_stages} ({len(written)} files)")

    # Settings before strokes so strokes pick up the pen size
    if parsed_args.pen_size is not None:
        session.update_setting('pen_size', parsed_args.pen_size)
    session.update_setting('border_size', parsed_args.border)
    session.update_setting('feather', parsed_args.feather)
    session.update_setting('invert_mask', parsed_args.invert)

    for indices in parsed_args.select:
        for number in indices:
            if not 1 <= number <= len(session.segments):
                print(f"Error: No segment {number} (have {len(session.segments)})", file=sys.stderr)
                return 1
            session.toggle_segment(session.segments[number - 1].id)

    for point in parsed_args.select_at:
        if session.toggle_at(point.x, point.y) is None:
            print(f"Warning: No segment at {point.x:g},{point.y:g}", file=sys.stderr)

    for tool, points in parsed_args.strokes:
        session.commit_stroke(points, tool)

    if parsed_args.list:
        for line in describe_segments(session.segments):
            print(line)

    audit_segments(session.segments, image.width, image.height)

    cutout = session.export()
    save_rgba(cutout, output_path)
    print(f"Saved cut-out to: {output_path} "
          f"({session.selected_count} segments, {len(session.manual_paths)} strokes)")

    if parsed_args.mask_output:
        mask = np.clip(np.round(session.mask() * 255), 0, 255).astype(np.uint8)
        print(f"Saved mask to: {save_rgba(mask, parsed_args.mask_output)}")

    if parsed_args.preview:
        print(f"Saved preview to: {save_rgba(session.preview(), parsed_args.preview)}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
