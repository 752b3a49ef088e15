#!/usr/bin/env python
"""
CheXScan command line interface.

Subcommands
-----------
validate   Check whether images look like chest X-rays
correct    Auto-correct an image and write the result
saliency   Generate a local heatmap with an inference graph
analyze    Run the full pipeline against the inference service
graphs     List registered inference graphs
"""

import argparse
import base64
import json
import logging
import sys
from pathlib import Path

# Add src to path for development
src_path = Path(__file__).parent.parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from PIL import Image  # noqa: E402

from chex_ui.config import PipelineConfig, setup_logging  # noqa: E402
from chex_ui.errors import ChexError  # noqa: E402

logger = logging.getLogger("chexscan")


def _write_data_url(url: str, path: Path):
    path.write_bytes(base64.b64decode(url.split(",", 1)[1]))


def cmd_validate(args):
    from chex_ui.core.validity import assess_radiograph

    ok = True
    for path in args.images:
        report = assess_radiograph(path)
        ok &= report.plausible
        print(f"{path}: {report.describe()}")
    return 0 if ok else 1


def cmd_correct(args):
    from chex_ui.core.correction import AutoCorrector

    result = AutoCorrector(quality=args.quality).correct(args.image)
    _write_data_url(result.corrected_image, args.output)
    print(json.dumps(result.corrections.to_dict()))
    return 0


def cmd_saliency(args):
    from chex_ui.core.graph_manager import GraphManager
    from chex_ui.core.image_io import load_bitmap
    from chex_ui.core.saliency import SaliencyGenerator, Strategy

    with GraphManager(args.graph, device=args.device) as graphs:
        generator = SaliencyGenerator(graphs, Strategy(args.strategy))
        result = generator.generate(
            load_bitmap(args.image),
            args.target_class,
            target_size=(args.size, args.size),
        )
    Image.fromarray(result.overlay, "RGBA").save(args.output)
    if args.heatmap:
        Image.fromarray(result.heatmap, "RGBA").save(args.heatmap)
    print(f"{result.strategy.value} heatmap written to {args.output}")
    return 0


def cmd_analyze(args):
    from chex_ui.core.findings import confidence_band, describe_finding
    from chex_ui.core.pipeline import AnalysisPipeline

    cfg = PipelineConfig.from_env()
    if args.service_url:
        cfg.service_url = args.service_url.rstrip("/")
    if args.graph:
        cfg.graph = args.graph

    def on_progress(steps, progress):
        current = next((s for s in steps if s.status.value == "processing"), None)
        if current is not None:
            logger.info("[%3d%%] %s", progress, current.title)

    with AnalysisPipeline(cfg, on_progress=on_progress) as pipeline:
        result = pipeline.run(args.image, args.target_class)

    if result.rejected:
        print(f"Rejected: {result.validity.describe()}")
        return 1

    report = result.report
    out = {
        "corrections": result.correction.corrections.to_dict(),
        "predictions": [
            {"label": p.label, "confidence": p.confidence, "band": confidence_band(p.confidence)}
            for p in report.predictions
        ],
        "summary": report.summary,
        "recommendations": report.recommendations,
        "boxes": [vars(b) for b in result.display_boxes],
    }
    primary = report.primary
    if primary is not None:
        info = describe_finding(primary.label)
        out["primary"] = {
            "label": primary.label,
            "confidence": primary.confidence,
            "description": info.description if info else None,
        }
    print(json.dumps(out, indent=2))
    if args.overlay and result.saliency is not None:
        Image.fromarray(result.saliency.overlay, "RGBA").save(args.overlay)
    return 0


def cmd_graphs(args):
    from chex_ui.models.graph_util import list_available_graphs

    for name, info in list_available_graphs().items():
        print(f"{name:20s} {info['architecture']:12s} {info['description']}")
    return 0


def build_parser():
    ap = argparse.ArgumentParser(prog="chexscan", description=__doc__.splitlines()[1])
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Plausibility check")
    p.add_argument("images", nargs="+", type=Path)
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("correct", help="Auto-correct an image")
    p.add_argument("image", type=Path)
    p.add_argument("-o", "--output", type=Path, required=True, help="Output JPEG path")
    p.add_argument("--quality", type=int, default=90)
    p.set_defaults(func=cmd_correct)

    p = sub.add_parser("saliency", help="Local saliency heatmap")
    p.add_argument("image", type=Path)
    p.add_argument("-g", "--graph", default="chexnet_imagenet", help="Graph name, path or URL")
    p.add_argument("-t", "--target-class", type=int, required=True)
    p.add_argument("-s", "--strategy", default="auto",
                   choices=["auto", "gradient", "attention", "per_channel"])
    p.add_argument("--size", type=int, default=224, help="Square target size")
    p.add_argument("--device", default="cpu")
    p.add_argument("-o", "--output", type=Path, required=True, help="Overlay PNG path")
    p.add_argument("--heatmap", type=Path, help="Also write the heatmap layer")
    p.set_defaults(func=cmd_saliency)

    p = sub.add_parser("analyze", help="Full analysis via the inference service")
    p.add_argument("image", type=Path)
    p.add_argument("--service-url", help="Overrides CHEXSCAN_SERVICE_URL")
    p.add_argument("-g", "--graph", help="Graph for the local heatmap")
    p.add_argument("-t", "--target-class", type=int)
    p.add_argument("--overlay", type=Path, help="Write the local heatmap overlay here")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("graphs", help="List registered graphs")
    p.set_defaults(func=cmd_graphs)
    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return args.func(args)
    except ChexError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
