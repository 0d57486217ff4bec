"""Demo launcher: ``python -m timeviz DATA.json --kind ranked-bars``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from timeviz.domain.models import ChartKind, ChartSpec


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="timeviz", description="Play back a time-indexed dataset as an animated chart")
    p.add_argument("data", help="JSON payload (any supported dataset shape)")
    p.add_argument(
        "--kind",
        required=True,
        help="Chart kind: " + ", ".join(k.value for k in ChartKind),
    )
    p.add_argument("--metric", default="value", help="Field holding the primary value")
    p.add_argument("--secondary-metric", default=None, help="Field holding the secondary value (choropleth)")
    p.add_argument("--geometry", default=None, help="GeoJSON FeatureCollection for the choropleth")
    p.add_argument("--id-property", default=None, help="Feature property joined against entity ids")
    p.add_argument("--title", default=None)
    p.add_argument("--unit", default=None, help="Value unit label ('$' formats money)")
    p.add_argument("--log-scale", action="store_true", help="Log x axis (bubble)")
    p.add_argument("--autoplay", action="store_true")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log = logging.getLogger("timeviz")

    labels = {}
    if args.unit:
        labels["unit"] = args.unit
    spec = ChartSpec(
        kind=ChartKind.parse(args.kind),
        metric_key=args.metric,
        secondary_metric_key=args.secondary_metric,
        labels=labels,
        title=args.title,
        x_scale="log" if args.log_scale else "linear",
    )
    geometry = _read_json(args.geometry) if args.geometry else None

    from PyQt6.QtWidgets import QApplication

    from timeviz.widgets.chart_view import TemporalChartView

    app = QApplication.instance() or QApplication(sys.argv)
    view = TemporalChartView(spec, geometry=geometry, id_property=args.id_property)
    view.setWindowTitle(args.title or f"timeviz - {spec.kind.value}")
    view.session.load(lambda: _read_json(args.data))
    if view.session.error is not None:
        log.error("could not load %s: %s", args.data, view.session.error)
    view.resize(960, 640)
    view.show()
    if args.autoplay:
        view.session.play()
    return app.exec()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
