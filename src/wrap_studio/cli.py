import argparse
import logging
import os
import sys
from pprint import pprint
from typing import Optional

from wrap_studio import document
from wrap_studio.cache import decode_source
from wrap_studio.config import Config
from wrap_studio.constants import MAX_EMBED_BYTES
from wrap_studio.encoding import reencode
from wrap_studio.errors import WrapStudioError
from wrap_studio.export import export_png
from wrap_studio.masks import DirectoryMaskProvider
from wrap_studio.version import __version__

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="wrap-studio command line utility.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Be more verbose.")
    parser.add_argument("--version", action="version", version=__version__)

    subparsers = parser.add_subparsers(dest="command", required=True)

    export_parser = subparsers.add_parser("export", help="Export a project as PNG")
    export_parser.add_argument("input_file", help="Input project file")
    export_parser.add_argument("output_file", help="Output PNG file")
    export_parser.add_argument(
        "--masks", help="Directory holding <model_id>/template.png masks"
    )

    show_parser = subparsers.add_parser("show", help="Show the project content")
    show_parser.add_argument("input_file", help="Input project file")

    compress_parser = subparsers.add_parser(
        "compress", help="Fit an image under the embedding size ceiling"
    )
    compress_parser.add_argument("input_file", help="Input image file")
    compress_parser.add_argument("output_file", help="Output image file")
    compress_parser.add_argument(
        "--max-bytes",
        type=int,
        default=MAX_EMBED_BYTES,
        help="Size ceiling in bytes (default: %(default)s)",
    )

    return parser.parse_args(argv)


def summarize(session) -> dict:
    return {
        "name": session.name,
        "model_id": session.model_id,
        "base_color": session.base_color,
        "layers": [
            {
                "id": layer.id,
                "type": layer.kind.value,
                "name": layer.name,
                "visible": layer.visible,
                "locked": layer.locked,
                "opacity": layer.opacity,
            }
            for layer in session.layers
        ],
    }


def main(argv: Optional[list[str]] = None) -> Optional[int]:
    args = parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    if args.verbose:
        logging.getLogger("wrap_studio").setLevel(logging.DEBUG)
    else:
        logging.getLogger("wrap_studio").setLevel(logging.INFO)

    try:
        if args.command == "export":
            config = Config.from_env()
            masks = None
            mask_root = args.masks or config.mask_root
            if mask_root:
                masks = DirectoryMaskProvider(mask_root)
            session = document.load(args.input_file, config=config, masks=masks)
            export_png(session, args.output_file)

        elif args.command == "show":
            session = document.load(args.input_file)
            pprint(summarize(session))

        elif args.command == "compress":
            entry = decode_source(args.input_file)
            result = reencode(entry, max_bytes=args.max_bytes)
            with open(args.output_file, "wb") as f:
                f.write(result.data)
            logger.info(
                "%s: %s, %d -> %d bytes"
                % (os.path.basename(args.input_file), result.method, entry.nbytes, result.size)
            )
    except (WrapStudioError, KeyError) as e:
        logger.error(str(e))
        return 1

    return None


if __name__ == "__main__":
    sys.exit(main())
