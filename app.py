#!/usr/bin/env python3
"""
Block Art Generator Web Interface

A simple Gradio-based web UI for converting pictures into block packs.

Run with: python app.py
Then open http://localhost:7860 in your browser
"""

import sys
from pathlib import Path
import tempfile
import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import gradio as gr
from blockart import BlockArtGenerator, PackManifest, Plane
from blockart.color import ColorMetric
from blockart.errors import BlockArtError


PLANES = {
    "Upright (facing Z)": Plane.XY_Z,
    "Upright (facing X)": Plane.ZY_X,
    "Flat": Plane.XZ_Y,
}

METRICS = {
    "Perceptual": ColorMetric.PERCEPTUAL,
    "Luma": ColorMetric.LUMA,
}


def process_image(
    image,
    catalog_file,
    pack_name: str,
    output_mode: str,
    plane_name: str,
    metric_name: str,
    max_width: int,
    max_height: int,
    chunk_size: int
):
    """
    Process an uploaded image and build a pack.

    Returns preview image, stats text, and pack path for download.
    """
    if image is None:
        return None, "Please upload an image first.", None
    if catalog_file is None:
        return None, "Please upload a block catalog.", None

    if image.ndim == 2:
        image = np.stack([image, image, image], axis=-1)

    try:
        generator = BlockArtGenerator.from_catalog(
            catalog_file,
            plane=PLANES[plane_name],
            metric=METRICS[metric_name],
            max_width=int(max_width),
            max_height=int(max_height),
            max_chunk_size=int(chunk_size)
        )
        generator.load_array(image).voxelize()

        manifest = PackManifest(pack_name.strip() or "blockart")
        if output_mode == "Structure":
            tree = generator.build_structure_pack(manifest)
        else:
            tree = generator.build_function_pack(manifest)

        export_dir = tempfile.mkdtemp(prefix="blockart_")
        pack_path = generator.export(tree, export_dir)
        preview = np.array(generator.render_preview(tile=4))
    except BlockArtError as e:
        return None, f"**Error:** {e}", None

    info = generator.preview()
    top_blocks = "\n".join(
        f"| {block_id} | {count:,} |" for block_id, count in generator.usage_report(8)
    )

    stats_text = f"""## Conversion Complete!

| Metric | Value |
|--------|-------|
| Input Size | {image.shape[1]} x {image.shape[0]} pixels |
| Build Size | {info['logical_size']} |
| Palette Size | {info['palette_size']} |
| Block Types Used | {info['block_types']} |

| Block | Pixels |
|-------|--------|
{top_blocks}

**Settings:** {output_mode}, {plane_name}, {metric_name}, max {max_width}x{max_height}
"""

    return preview, stats_text, str(pack_path)


# Build the Gradio interface
with gr.Blocks(title="Block Art Generator") as app:

    gr.Markdown("""
    # Block Art Generator
    ### Convert Pictures into Block Packs

    Upload a picture and a block catalog, adjust the settings, and download your pack!
    """)

    with gr.Row():
        # Left column - Input
        with gr.Column(scale=1):
            gr.Markdown("### Input")

            image_input = gr.Image(
                label="Upload Image",
                type="numpy",
                image_mode="RGB"
            )

            catalog_input = gr.File(
                label="Block Catalog (JSON)",
                file_types=[".json"],
                type="filepath"
            )

            gr.Markdown("### Settings")

            pack_name = gr.Textbox(value="blockart", label="Pack Name")

            output_mode = gr.Radio(
                choices=["Function", "Structure"],
                value="Function",
                label="Output"
            )

            plane = gr.Dropdown(
                choices=list(PLANES),
                value="Upright (facing Z)",
                label="Orientation"
            )

            metric = gr.Dropdown(
                choices=list(METRICS),
                value="Perceptual",
                label="Color Matching"
            )

            max_width = gr.Slider(
                minimum=16,
                maximum=960,
                value=480,
                step=16,
                label="Max Width (blocks)"
            )

            max_height = gr.Slider(
                minimum=16,
                maximum=540,
                value=270,
                step=16,
                label="Max Height (blocks)"
            )

            chunk_size = gr.Slider(
                minimum=1000,
                maximum=10000,
                value=9000,
                step=500,
                label="Commands per Function File"
            )

            generate_btn = gr.Button("Generate Pack", variant="primary")

        # Middle column - Preview
        with gr.Column(scale=2):
            gr.Markdown("### Block Preview")

            block_preview = gr.Image(label="Blocks", type="numpy")

            stats_output = gr.Markdown(
                value="Upload an image and click 'Generate' to see results."
            )

        # Right column - Downloads
        with gr.Column(scale=1):
            gr.Markdown("### Download")

            pack_output = gr.File(label="Pack (.mcpack)")

            gr.Markdown("""
            ---
            **Tips:**
            - **Function** = placed over several ticks, run `start` first
            - **Structure** = load with `/structure load`
            - **Flat** = lies on the ground, matched by top faces
            """)

    # Wire up events
    generate_btn.click(
        fn=process_image,
        inputs=[
            image_input,
            catalog_input,
            pack_name,
            output_mode,
            plane,
            metric,
            max_width,
            max_height,
            chunk_size
        ],
        outputs=[block_preview, stats_output, pack_output]
    )


if __name__ == "__main__":
    print("\n" + "="*60)
    print("Block Art Generator Web Interface")
    print("="*60)
    print("\nStarting server...")
    print("Open http://localhost:7860 in your browser\n")

    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False
    )
