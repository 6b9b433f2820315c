"""Command-line interface for the texture node chain."""

import argparse
import logging
import os
import sys
from typing import List, Optional, Tuple

from tqdm import tqdm

from .config import PipelineConfig
from .core import (
    NodeExecutionFailedError,
    load_image,
    load_mask,
    load_mesh,
    save_image,
    setup_logging,
)
from .core.io import SUPPORTED_EXTENSIONS
from .nodes import NODE_TYPES, BlendNode, UVIslandBlurNode, node_to_dict
from .pipeline import TextureProcessor

logger = logging.getLogger("texchain")


def _template_config() -> PipelineConfig:
    """Default config listing every node type, all disabled."""
    config = PipelineConfig()
    for node_cls in NODE_TYPES.values():
        node = node_cls()
        node.enabled = False
        config.nodes.append(node_to_dict(node))
    return config


def _collect_jobs(input_path: str, output_path: str) -> List[Tuple[str, str]]:
    """Pair every input image with its output path."""
    if os.path.isdir(input_path):
        names = sorted(
            name for name in os.listdir(input_path)
            if os.path.splitext(name)[1].lower() in SUPPORTED_EXTENSIONS
            and os.path.isfile(os.path.join(input_path, name))
        )
        return [
            (os.path.join(input_path, name), os.path.join(output_path, name))
            for name in names
        ]
    if os.path.isdir(output_path):
        output_path = os.path.join(output_path, os.path.basename(input_path))
    return [(input_path, output_path)]


def _attach_inputs(processor: TextureProcessor, args) -> None:
    """Apply --mesh and --blend to every node that consumes them."""
    if args.mesh:
        mesh = load_mesh(args.mesh)
        for node in processor.nodes:
            if isinstance(node, UVIslandBlurNode):
                node.mesh = mesh
    if args.blend:
        blend_image = load_image(args.blend)
        for node in processor.nodes:
            if isinstance(node, BlendNode):
                node.blend_image = blend_image


def main(argv: Optional[List[str]] = None):
    """Parse CLI arguments and run the configured node chain."""
    parser = argparse.ArgumentParser(
        description="Non-destructive texture node chain with UV-seam aware blur",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  TexChain --input albedo.png --output albedo_edit.png --config nodes.yaml
  TexChain -i ./textures -o ./edited -c nodes.yaml --max-size 2048
  TexChain -i albedo.png -o out.png -c nodes.yaml --mesh body.obj
  TexChain --generate-config --config nodes.yaml
        """
    )
    parser.add_argument("--input", "-i", help="Input image or directory of images")
    parser.add_argument("--output", "-o", help="Output image or directory")
    parser.add_argument("--config", "-c", help="Path to node chain YAML")
    parser.add_argument("--mask", help="Mask image (first channel used as weights)")
    parser.add_argument("--mesh", help="Mesh (.npz or .obj) for UV island blur nodes")
    parser.add_argument("--blend", help="Image used by blend nodes")
    parser.add_argument("--max-size", type=int,
                        help="Downsample results so neither side exceeds this")
    parser.add_argument("--bits", type=int, choices=[8, 16], help="Output bit depth")
    parser.add_argument("--generate-config", action="store_true",
                        help="Write a template node chain config and exit")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

    args = parser.parse_args(argv)

    if args.generate_config:
        dest = args.config or "texchain.yaml"
        if os.path.isdir(dest):
            dest = os.path.join(dest, "texchain.yaml")
        _template_config().to_yaml(dest)
        print(f"Generated default {dest}")
        return

    # Surface from_yaml() warnings before file logging is configured.
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    if args.config:
        if not os.path.exists(args.config):
            logger.error("Config file not found: %s", args.config)
            print(f"Error: Config file not found: {args.config}")
            sys.exit(1)
        try:
            config = PipelineConfig.from_yaml(args.config)
        except ValueError as e:
            logger.error("Invalid config file '%s': %s", args.config, e)
            print(f"Error: Invalid config: {e}")
            sys.exit(1)
    else:
        config = PipelineConfig()

    if args.log_level:
        config.log_level = args.log_level
    if args.bits is not None:
        config.output_bits = args.bits
    if args.max_size is not None:
        config.max_output_resolution = args.max_size
    if args.mask:
        config.mask_image = args.mask

    try:
        config.validate()
    except ValueError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        sys.exit(1)

    if not args.input or not os.path.exists(args.input):
        logger.error("Input not found: %s", args.input)
        print(f"Error: Input not found: {args.input}")
        sys.exit(1)
    if not args.output:
        print("Error: --output is required")
        sys.exit(1)

    jobs = _collect_jobs(args.input, args.output)
    if not jobs:
        logger.error("No supported images found in %s", args.input)
        print(f"Error: No supported images found in {args.input}")
        sys.exit(1)

    log_dir = args.output if os.path.isdir(args.input) else (os.path.dirname(args.output) or ".")
    os.makedirs(log_dir, exist_ok=True)
    setup_logging(config.log_level, os.path.join(log_dir, "texchain.log"))

    base_dir = os.path.dirname(os.path.abspath(args.config)) if args.config else None
    try:
        processor = TextureProcessor.from_config(config, base_dir=base_dir)
        _attach_inputs(processor, args)
        mask = load_mask(config.mask_image, config.max_image_pixels) if config.mask_image else None
    except (OSError, ValueError) as e:
        logger.error("Failed to prepare node chain: %s", e)
        print(f"Error: {e}")
        sys.exit(1)

    failures = 0
    with processor:
        processor.set_mask(mask)
        for src, dst in tqdm(jobs, desc="Processing", unit="img", disable=len(jobs) < 2):
            try:
                processor.set_source(load_image(src, config.max_image_pixels))
                if config.max_output_resolution > 0:
                    result = processor.get_result_capped(config.max_output_resolution)
                else:
                    result = processor.get_result()
                save_image(result, dst, bits=config.output_bits)
                result.release()
                logger.info("Wrote %s", dst)
            except NodeExecutionFailedError as e:
                logger.error("Node chain failed on %s: %s", src, e)
                print(f"Error: {e}")
                sys.exit(2)
            except (OSError, ValueError) as e:
                failures += 1
                logger.error("Failed to process %s: %s", src, e)

    if failures:
        logger.error("%d of %d image(s) failed", failures, len(jobs))
        sys.exit(1)
    logger.info("Processed %d image(s)", len(jobs))


if __name__ == "__main__":
    main()
