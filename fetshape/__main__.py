import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from fetshape import FetError, Reconstruction, TransformationType

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _print_summary(reconstruction: Reconstruction) -> None:
    print(f"Shapes: {len(reconstruction.shapes)}")
    print(f"Features: {len(reconstruction.features)}")
    print(f"Matches: {len(reconstruction.matches)}")
    print(f"Sequences: {len(reconstruction.sequences)}")
    nvariables = reconstruction.update_variable_index()
    print(f"Free variables: {nvariables}")
    for shape in reconstruction.shapes:
        free = sum(1 for slot in shape.variable_index if slot >= 0)
        drift = np.linalg.norm(
            shape.transformation(TransformationType.CURRENT).translation
            - shape.transformation(TransformationType.GROUND_TRUTH).translation
        )
        print(
            f"  [{shape.reconstruction_index}] {shape.name or '(unnamed)'}: "
            f"features={shape.n_features()} matches={shape.n_matches()} "
            f"children={shape.n_children()} free={free} "
            f"extent={shape.bbox().diagonal_length():.6g} "
            f"translation_error={drift:.6g}"
        )


def _cmd_info(args: argparse.Namespace) -> None:
    reconstruction = Reconstruction.load(args.path)
    _print_summary(reconstruction)


def _cmd_convert(args: argparse.Namespace) -> None:
    reconstruction = Reconstruction.load(args.source)
    Path(args.target).parent.mkdir(parents=True, exist_ok=True)
    reconstruction.save(args.target)
    print(f"Converted {args.source} -> {args.target}")


def _cmd_perturb(args: argparse.Namespace) -> None:
    reconstruction = Reconstruction.load(args.source)
    rng = np.random.default_rng(args.seed)
    perturbed = 0
    for shape in reconstruction.shapes:
        if all(shape.is_locked(dof) for dof in range(shape.n_variables())):
            continue
        shape.perturb_transformation(args.translation, args.rotation, rng=rng)
        perturbed += 1
    logger.info("Perturbed %d of %d shape(s)", perturbed, len(reconstruction.shapes))
    reconstruction.save(args.target)
    print(f"Perturbed {perturbed} shape(s); wrote {args.target}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Inspect and convert shape reconstruction files")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    info = commands.add_parser("info", help="Print a summary of a reconstruction file")
    info.add_argument("path", help="Reconstruction file (.fet ascii or .fetb binary)")
    info.set_defaults(handler=_cmd_info)

    convert = commands.add_parser("convert", help="Re-encode a reconstruction file")
    convert.add_argument("source")
    convert.add_argument("target", help="Output path; the suffix selects the encoding")
    convert.set_defaults(handler=_cmd_convert)

    perturb = commands.add_parser("perturb", help="Randomly perturb every unlocked shape")
    perturb.add_argument("source")
    perturb.add_argument("target")
    perturb.add_argument("--translation", type=float, default=0.01, help="Max translation (default: 0.01)")
    perturb.add_argument("--rotation", type=float, default=0.05, help="Max rotation in radians (default: 0.05)")
    perturb.add_argument("--seed", type=int, default=123, help="Random seed (default: 123)")
    perturb.set_defaults(handler=_cmd_perturb)

    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    try:
        args.handler(args)
    except (FetError, OSError) as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main(sys.argv[1:])
