"""Turn a raster image into ridge-line SVG art.

Usage:
    python linescape.py --input in.png --rows 60

The script samples evenly spaced horizontal rows of the image and draws each
row as a polyline whose height follows pixel intensity:
    1. Row sampling: rows are read concurrently from the red channel.
    2. Height mapping: intensity 0..255 is scaled to 0..maxHeight.
    3. Classification: pixels are "land" (value > 0) or "water" (value == 0);
       short runs of the other class are bridged with a lookahead window.
    4. Decimation: every k-th point of a segment is kept.
    5. SVG export: one document per requested type (land, water, both, all).

Installation:
    pip install numpy pillow opencv-python svgwrite tqdm

Examples:
    python linescape.py -i coast.png -n 80 -t land -o coast.svg
    python linescape.py -i coast.png -n 80 -H 60 -l 3 -s 2 --preview
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
import svgwrite
from PIL import Image
from tqdm import tqdm

logger = logging.getLogger(__name__)

# ---- constants --------------------------------------------------------------

LAND = "land"
WATER = "water"
BOTH = "both"
ALL = "all"
TYPES = (LAND, WATER, BOTH, ALL)

MAX_INTENSITY = 255
DEFAULT_OUTPUT = "output.svg"
DEFAULT_MAX_HEIGHT = 100
DEFAULT_LOOKAHEAD = 5
DEFAULT_SAMPLE_RATE = 4
DEFAULT_CONCURRENCY = 8

Point = Tuple[int, int]

# ---- errors -----------------------------------------------------------------


class LinescapeError(Exception):
    """Base class for failures that abort a run."""


class ConfigError(LinescapeError):
    """Missing or malformed command-line input."""


class ImageAccessError(LinescapeError):
    """The source image or one of its rows could not be read."""

# ---- data structures --------------------------------------------------------


@dataclass
class Segment:
    kind: str
    points: List[Point]


@dataclass
class Document:
    """Polylines on a fixed canvas, serialised as SVG."""
    kind: str
    width: int
    height: int
    polylines: List[List[Point]] = field(default_factory=list)

    def to_drawing(self, filename: str = "noname.svg") -> svgwrite.Drawing:
        dwg = svgwrite.Drawing(filename, size=(self.width, self.height))
        dwg.viewbox(0, 0, self.width, self.height)
        for points in self.polylines:
            dwg.add(dwg.polyline(points=points, fill="none", stroke="black", stroke_width=1))
        return dwg

    def to_svg(self) -> str:
        return self.to_drawing().tostring()

    def save(self, path: Path) -> None:
        self.to_drawing(path.as_posix()).save()


@dataclass
class Options:
    input: Path
    rows: int
    kind: str = ALL
    output: str = DEFAULT_OUTPUT
    max_height: int = DEFAULT_MAX_HEIGHT
    lookahead: int = DEFAULT_LOOKAHEAD
    sample_rate: int = DEFAULT_SAMPLE_RATE
    concurrency: int = DEFAULT_CONCURRENCY
    preview: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Options":
        if not args.input or not args.rows:
            raise ConfigError("Input file and number of rows are required.")
        options = cls(
            input=Path(args.input).resolve(),
            rows=args.rows,
            kind=args.type,
            output=args.output,
            max_height=args.maxHeight,
            lookahead=args.lookahead,
            sample_rate=args.sampleRate,
            concurrency=args.concurrency,
            preview=args.preview,
        )
        options.validate()
        return options

    def validate(self) -> None:
        checks = [
            (self.rows >= 1, "number of rows must be at least 1"),
            (self.max_height >= 0, "maxHeight must not be negative"),
            (self.lookahead >= 0, "lookahead must not be negative"),
            (self.sample_rate >= 1, "sampleRate must be at least 1"),
            (self.concurrency >= 1, "concurrency must be at least 1"),
            (self.kind in TYPES, f"type must be one of {', '.join(TYPES)}"),
        ]
        for ok, message in checks:
            if not ok:
                raise ConfigError(message)

# ---- row sampling -----------------------------------------------------------


@dataclass(frozen=True)
class RasterImage:
    path: Path
    width: int
    height: int

    @classmethod
    def open(cls, path: Path) -> "RasterImage":
        """Read only the header to learn the image size."""
        path = Path(path)
        try:
            with Image.open(path) as im:
                width, height = im.size
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageAccessError(f"cannot read image metadata: {exc}") from exc
        return cls(path, width, height)

    def read_row(self, index: int) -> np.ndarray:
        """Return the red channel of pixel row ``index`` as uint8 values."""
        if not 0 <= index < self.height:
            raise ImageAccessError(f"row {index} is outside image of height {self.height}")
        try:
            with Image.open(self.path) as im:
                strip = im.crop((0, index, self.width, index + 1)).convert("RGBA")
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageAccessError(f"cannot read row {index} of {self.path}: {exc}") from exc
        return np.asarray(strip.getchannel("R"), dtype=np.uint8).reshape(-1)


def row_indices(height: int, num_rows: int) -> List[int]:
    if num_rows <= 0:
        raise ValueError("num_rows must be positive")
    step = height // num_rows
    return [i * step for i in range(num_rows)]


async def sample_rows(image: RasterImage, indices: Sequence[int],
                      concurrency: int = DEFAULT_CONCURRENCY) -> List[np.ndarray]:
    """Read all rows concurrently; result order follows ``indices``."""
    sem = asyncio.Semaphore(concurrency)
    rows: List[Optional[np.ndarray]] = [None] * len(indices)

    with tqdm(total=len(indices), desc="sampling rows", unit="row", disable=None) as bar:
        async def worker(pos: int, index: int) -> None:
            async with sem:
                rows[pos] = await asyncio.to_thread(image.read_row, index)
            bar.update(1)

        await asyncio.gather(*(worker(pos, index) for pos, index in enumerate(indices)))
    return rows  # type: ignore[return-value]

# ---- height mapping ---------------------------------------------------------


def interpolate_height(value: int, max_height: int) -> int:
    return math.floor((value / MAX_INTENSITY) * max_height)


def row_y(row: np.ndarray, offset: int, max_height: int) -> List[int]:
    """y coordinate per column; brighter pixels sit higher within the band."""
    return [offset + max_height - interpolate_height(int(v), max_height) for v in row]

# ---- classification ---------------------------------------------------------

PREDICATES: Dict[str, Callable[[int], bool]] = {
    LAND: lambda value: value > 0,
    WATER: lambda value: value == 0,
}


def classify_row(row: np.ndarray, kind: str, *, offset: int = 0,
                 max_height: int = DEFAULT_MAX_HEIGHT,
                 lookahead: int = DEFAULT_LOOKAHEAD) -> List[Segment]:
    """Split a row into runs of ``kind`` pixels, bridging short gaps.

    A failing column is skipped without closing the run when any of the next
    ``lookahead`` columns qualifies again.
    """
    qualifies = PREDICATES[kind]
    values = [int(v) for v in row]
    ys = row_y(row, offset, max_height)
    segments: List[Segment] = []
    current: List[Point] = []
    for col, value in enumerate(values):
        if qualifies(value):
            current.append((col, ys[col]))
            continue
        if any(qualifies(v) for v in values[col + 1:col + 1 + lookahead]):
            continue
        if current:
            segments.append(Segment(kind, current))
            current = []
    if current:
        segments.append(Segment(kind, current))
    return segments


def both_segment(row: np.ndarray, *, offset: int = 0,
                 max_height: int = DEFAULT_MAX_HEIGHT) -> Segment:
    ys = row_y(row, offset, max_height)
    return Segment(BOTH, list(enumerate(ys)))

# ---- decimation -------------------------------------------------------------


def decimate(segment: Segment, sample_rate: int) -> Segment:
    if sample_rate < 1:
        raise ValueError("sample_rate must be at least 1")
    return replace(segment, points=segment.points[::sample_rate])

# ---- document assembly ------------------------------------------------------


def document_kinds(kind: str) -> Tuple[str, ...]:
    return (LAND, WATER, BOTH) if kind == ALL else (kind,)


def assemble(rows: Sequence[np.ndarray], kind: str, *, spacing: int,
             max_height: int = DEFAULT_MAX_HEIGHT, lookahead: int = DEFAULT_LOOKAHEAD,
             sample_rate: int = DEFAULT_SAMPLE_RATE, fallback_width: int = 0) -> Document:
    """Build one document; the canvas width comes from the first row."""
    width = len(rows[0]) if len(rows) else fallback_width
    doc = Document(kind, width, len(rows) * spacing + max_height)
    for pos, row in enumerate(rows):
        offset = pos * spacing
        if kind == BOTH:
            doc.polylines.append(both_segment(row, offset=offset,
                                              max_height=max_height).points)
            continue
        for segment in classify_row(row, kind, offset=offset,
                                    max_height=max_height, lookahead=lookahead):
            doc.polylines.append(decimate(segment, sample_rate).points)
    logger.debug("%s: %d polylines on %dx%d canvas", kind, len(doc.polylines), doc.width, doc.height)
    return doc


def assemble_all(rows: Sequence[np.ndarray], kind: str, **kwargs) -> List[Document]:
    return [assemble(rows, k, **kwargs) for k in document_kinds(kind)]

# ---- SVG export -------------------------------------------------------------


def output_path(output: str, requested: str, kind: str) -> Path:
    if requested == ALL:
        base = output[:-len(".svg")] if output.endswith(".svg") else output
        return Path(f"{base}_{kind}.svg")
    return Path(output).resolve()


def preview_path(svg_path: Path) -> Path:
    return svg_path.with_name(svg_path.stem + "_preview.png")


def render_preview(document: Document, out_path: Path) -> None:
    """Rasterise the document's polylines onto a white PNG."""
    canvas = np.full((max(document.height, 1), max(document.width, 1), 3), 255, np.uint8)
    for points in document.polylines:
        pts = np.array(points, dtype=np.int32).reshape(-1, 1, 2)
        cv2.polylines(canvas, [pts], False, (0, 0, 0), 1)
    if not cv2.imwrite(out_path.as_posix(), canvas):
        raise OSError(f"could not write preview {out_path}")


def write_documents(documents: Sequence[Document], options: Options) -> List[Path]:
    written: List[Path] = []
    for doc in documents:
        path = output_path(options.output, options.kind, doc.kind)
        doc.save(path)
        if options.kind == ALL:
            print(f"SVG file for type '{doc.kind}' has been written to {path}")
        else:
            print(f"SVG file has been written to {path}")
        if options.preview:
            render_preview(doc, preview_path(path))
        written.append(path)
    return written

# ---- main processing --------------------------------------------------------


async def render(image: RasterImage, options: Options) -> List[Document]:
    indices = row_indices(image.height, options.rows)
    spacing = image.height // options.rows
    logger.info("%s: %dx%d, %d rows every %d px", image.path.name, image.width,
                image.height, options.rows, spacing)
    rows = await sample_rows(image, indices, concurrency=options.concurrency)
    return assemble_all(rows, options.kind, spacing=spacing, max_height=options.max_height,
                        lookahead=options.lookahead, sample_rate=options.sample_rate,
                        fallback_width=image.width)


def run(options: Options) -> List[Path]:
    image = RasterImage.open(options.input)
    documents = asyncio.run(render(image, options))
    return write_documents(documents, options)

# ---- argument parsing -------------------------------------------------------


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


def parse_number(value: str) -> int:
    try:
        return int(value, 10)
    except ValueError:
        raise argparse.ArgumentTypeError("Not a number.") from None


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    p = ArgumentParser(description="Draw sampled image rows as SVG ridge lines")
    p.add_argument("-i", "--input", help="Input image file")
    p.add_argument("-n", "--rows", type=parse_number, help="Number of rows to sample")
    p.add_argument("-t", "--type", choices=TYPES, default=ALL,
                   help="Output type: land, water, both, all")
    p.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="Base output SVG file name")
    p.add_argument("-H", "--maxHeight", type=parse_number, default=DEFAULT_MAX_HEIGHT,
                   help="Maximum height for interpolation")
    p.add_argument("-l", "--lookahead", type=parse_number, default=DEFAULT_LOOKAHEAD,
                   help="Lookahead steps to reduce fragmentation")
    p.add_argument("-s", "--sampleRate", type=parse_number, default=DEFAULT_SAMPLE_RATE,
                   help="Keep every n-th point of a segment, larger is less")
    p.add_argument("-c", "--concurrency", type=parse_number, default=DEFAULT_CONCURRENCY,
                   help="Rows read in parallel")
    p.add_argument("--preview", action="store_true", help="Also write a PNG preview per SVG")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)

# ---- entrypoint -------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> None:
    try:
        args = parse_args(sys.argv[1:] if argv is None else argv)
        options = Options.from_args(args)
    except ConfigError as exc:
        raise SystemExit(f"Error: {exc}") from exc
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        run(options)
    except LinescapeError as exc:
        raise SystemExit(f"Error: {exc}") from exc


if __name__ == "__main__":
    main()
