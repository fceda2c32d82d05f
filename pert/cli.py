"""
PERT activity-on-arc network generator.

Reads an activity list and writes a Graphviz description of the
activity-on-arc network, annotated with event times and floats:

    python -m pert activities.csv | dot -Tpng -o network.png
"""

import argparse
import logging
import sys
from typing import List, Optional

from .engine import PertScheduler
from .errors import PertError
from .exporter import write_dot

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pert-aoa",
        description="Build a PERT/CPM activity-on-arc network and print it as Graphviz DOT",
    )
    parser.add_argument(
        "input",
        help="CSV activity list: id,label,duration,predecessor... ('*' for none)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    scheduler = PertScheduler()
    try:
        scheduler.load_csv(args.input)
        network = scheduler.calculate()
    except OSError as e:
        print(f"error: cannot read {args.input}: {e.strerror or e}", file=sys.stderr)
        return 1
    except PertError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    logger.info("Project duration %d", scheduler.project_duration)
    write_dot(network, sys.stdout)
    return 0
