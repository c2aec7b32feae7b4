# =============================================================================
# CLIPKit Demo - Encoder Bundle Export Script
# =============================================================================
# One-time utility that splits a HuggingFace CLIP checkpoint into the two
# bundles the server loads: the vision tower with its projection head plus
# the image processor, and the text tower with its projection head plus the
# tokenizer.  The server never has to load the full dual-tower model.
#
# The checkpoint and the bundle locations default to the values in config.py
# (clip_model_id, image_encoder_path, text_encoder_path), so the server finds
# the bundles without extra flags.
#
# Usage:
#   python3 scripts/export_encoders.py [--model-id openai/clip-vit-base-patch32]
#                                      [--output-dir models]
#
# Output:
#   models/ImageEncoder_float32/  : CLIPVisionModelWithProjection + processor
#   models/TextEncoder_float32/   : CLIPTextModelWithProjection + tokenizer
# =============================================================================

import argparse
import os
import time
from typing import Optional, Tuple

import torch

from config import get_config


def bundle_dirs(output_dir: Optional[str] = None) -> Tuple[str, str]:
    """
    Resolve the image and text bundle directories.

    Without ``output_dir`` these are the configured encoder paths; with it,
    the configured bundle names are placed under ``output_dir`` instead.
    """
    config = get_config()
    if output_dir is None:
        return config.image_encoder_path, config.text_encoder_path
    return (
        os.path.join(output_dir, os.path.basename(config.image_encoder_path)),
        os.path.join(output_dir, os.path.basename(config.text_encoder_path)),
    )


def export_encoders(model_id: Optional[str] = None, output_dir: Optional[str] = None) -> None:
    """
    Export the image and text encoder bundles from a CLIP checkpoint.

    Args:
        model_id:   HuggingFace model identifier for CLIP.  Defaults to the
                    configured clip_model_id.
        output_dir: Directory to write the bundles into.  Defaults to the
                    directories of the configured encoder paths.
    """
    model_id = model_id or get_config().clip_model_id
    image_dir, text_dir = bundle_dirs(output_dir)

    # Skip export if both bundles already exist
    if os.path.isdir(image_dir) and os.path.isdir(text_dir):
        print(f"Encoder bundles already exist ({image_dir}, {text_dir}). Skipping export.")
        return

    os.makedirs(os.path.dirname(image_dir) or ".", exist_ok=True)
    os.makedirs(os.path.dirname(text_dir) or ".", exist_ok=True)

    # Import here to avoid slow import when bundles already exist
    from transformers import (
        CLIPConfig,
        CLIPImageProcessor,
        CLIPTextModelWithProjection,
        CLIPTokenizer,
        CLIPVisionModelWithProjection,
    )

    print(f"Loading {model_id} (downloads the checkpoint on first run)...")
    t0 = time.time()

    # The checkpoint holds the full dual-tower CLIPConfig; each tower gets its
    # own sub-config, with the shared projection size copied onto it.
    full_config = CLIPConfig.from_pretrained(model_id)
    vision_config = full_config.vision_config
    vision_config.projection_dim = full_config.projection_dim
    text_config = full_config.text_config
    text_config.projection_dim = full_config.projection_dim

    # -------------------------------------------------------------------------
    # 1. Image encoder bundle
    # -------------------------------------------------------------------------
    vision_model = CLIPVisionModelWithProjection.from_pretrained(
        model_id, config=vision_config, torch_dtype=torch.float32
    )
    vision_model.save_pretrained(image_dir)
    CLIPImageProcessor.from_pretrained(model_id).save_pretrained(image_dir)
    print(f"Saved image encoder: {image_dir} (projection_dim={vision_config.projection_dim})")

    # -------------------------------------------------------------------------
    # 2. Text encoder bundle
    # -------------------------------------------------------------------------
    text_model = CLIPTextModelWithProjection.from_pretrained(
        model_id, config=text_config, torch_dtype=torch.float32
    )
    text_model.save_pretrained(text_dir)
    CLIPTokenizer.from_pretrained(model_id).save_pretrained(text_dir)
    print(f"Saved text encoder: {text_dir} (projection_dim={text_config.projection_dim})")

    print(f"Export finished in {time.time() - t0:.1f}s")

    # Free the towers from memory
    del vision_model
    del text_model
    import gc

    gc.collect()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Export CLIP image/text encoder bundles")
    parser.add_argument("--model-id", default=None, help="HuggingFace CLIP checkpoint (default: config clip_model_id)")
    parser.add_argument("--output-dir", default=None, help="Directory for the bundles (default: configured encoder paths)")
    args = parser.parse_args()
    export_encoders(model_id=args.model_id, output_dir=args.output_dir)
