import argparse
import json
import sys
from pathlib import Path

from .engine import SearchEngine
from .errors import GeoSearchError, ProviderError
from .log import configure_logging
from .models import SearchKind
from .providers.registry import get_provider


def _radius_arg(value):
    try:
        lat, lng, miles = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"expected LAT,LNG,MILES, got {value!r}"
        ) from None
    return SearchKind.RADIUS, {"lat": lat, "lng": lng, "radius": miles}


def _polygon_arg(value):
    points = []
    for pair in value.split(";"):
        pair = pair.strip()
        if not pair:
            continue
        try:
            lat, lng = (float(part) for part in pair.replace(",", " ").split())
        except ValueError:
            raise argparse.ArgumentTypeError(
                f"expected 'LAT LNG;LAT LNG;...', got {value!r}"
            ) from None
        points.append([lat, lng])
    if len(points) < 3:
        raise argparse.ArgumentTypeError("polygon needs at least 3 points")
    return SearchKind.POLYGON, {"points": points}


def _hierarchy_arg(value):
    parts = [p.strip() for p in value.split("/")]
    if not parts[0] or len(parts) > 3 or any(not p for p in parts):
        raise argparse.ArgumentTypeError(
            f"expected STATE[/COUNTY[/CITY]], got {value!r}"
        )
    parts += [None] * (3 - len(parts))
    state, county, city = parts
    return SearchKind.HIERARCHY, {"state": state, "county": county, "city": city}


def build_parser():
    parser = argparse.ArgumentParser(
        description="Run several geographic searches and print the merged view",
    )
    parser.add_argument(
        "--radius",
        dest="searches",
        action="append",
        type=_radius_arg,
        metavar="LAT,LNG,MILES",
        help="Radius search (repeatable)",
    )
    parser.add_argument(
        "--polygon",
        dest="searches",
        action="append",
        type=_polygon_arg,
        metavar="'LAT LNG;LAT LNG;...'",
        help="Polygon search (repeatable)",
    )
    parser.add_argument(
        "--hierarchy",
        dest="searches",
        action="append",
        type=_hierarchy_arg,
        metavar="STATE[/COUNTY[/CITY]]",
        help="State/county/city search (repeatable)",
    )
    parser.add_argument(
        "--exclude",
        type=int,
        action="append",
        default=[],
        metavar="N",
        help="Exclude the Nth search given on the command line (1-based)",
    )
    parser.add_argument(
        "--no-combine",
        dest="combine",
        action="store_false",
        help="Only show the most recent search instead of combining all",
    )
    parser.add_argument(
        "--export",
        default=None,
        help="Write the export payload to a file (path)",
    )
    parser.add_argument(
        "--restore",
        default=None,
        help="Restore a previously exported payload before searching",
    )
    parser.add_argument(
        "--provider",
        choices=("dev", "http"),
        default=None,
        help="Search provider (defaults to GMS_PROVIDER)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, etc.)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit structured JSON log lines",
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or "WARNING", json_lines=args.log_json)

    engine = SearchEngine(get_provider(args.provider))
    errors = []

    if args.restore:
        try:
            raw = json.loads(Path(args.restore).read_text(encoding="utf-8"))
            report = engine.restore(raw)
        except (OSError, ValueError) as e:
            print(json.dumps({"error": f"restore failed: {e}"}))
            return 1
        errors.extend(report.failed.values())

    created = []
    for kind, geometry in args.searches or []:
        try:
            created.append(engine.run_search(kind, geometry))
        except ProviderError as e:
            errors.append(str(e))
            created.append(None)
        except (GeoSearchError, ValueError) as e:
            parser.error(str(e))

    for n in args.exclude:
        if not 1 <= n <= len(created):
            parser.error(f"--exclude {n} is out of range")
        entry = created[n - 1]
        if entry is not None and entry.id in engine:
            engine.set_excluded(entry.id, True)

    engine.set_combine(args.combine)

    if args.export:
        payload = engine.export()
        Path(args.export).write_text(
            json.dumps(payload.model_dump(mode="json"), indent=2), encoding="utf-8"
        )

    print(json.dumps(engine.snapshot(), indent=2, sort_keys=True))
    for message in errors:
        print(json.dumps({"error": message}))
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
