"""
Command-line interface for the Uchiya marker tracker.

Provides commands for initializing, generating, registering and recognizing markers.
"""

import sys
import logging
import argparse
from pathlib import Path

import cv2
import numpy as np

from .tracker import UchiyaMarkerTracker
from .config_manager import ConfigManager
from .generator import UchiyaMarkerGenerator
from .points import load_points, random_dots, save_points


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--config',
        '-c',
        help='Path to config file'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Show debug logging'
    )


def _load_tracker(config: str) -> UchiyaMarkerTracker:
    tracker = UchiyaMarkerTracker(Path(config) if config else None)
    if tracker.config is None:
        print("Error: No configuration found. Run 'uchiya-tracker init' first.")
        sys.exit(1)
    return tracker


def init_project() -> None:
    """Initialize a new marker project."""
    parser = argparse.ArgumentParser(
        description="Initialize a new Uchiya marker tracker project"
    )
    parser.add_argument(
        '--directory',
        '-d',
        default='.',
        help='Project directory (default: current directory)'
    )

    args = parser.parse_args(sys.argv[2:])

    project_dir = Path(args.directory).resolve()
    print(f"Initializing Uchiya marker tracker in {project_dir}...")

    manager = ConfigManager.initialize_project(project_dir)

    print(f"✓ Created project structure")
    print(f"✓ Saved configuration to {manager.config_path}")
    print(f"\nNext steps:")
    print(f"  1. Generate markers: uchiya-tracker generate --name <name> --image")
    print(f"  2. Register existing markers: uchiya-tracker register --marker <file> --name <name>")
    print(f"  3. Recognize markers: uchiya-tracker recognize <image> --image")


def generate_marker() -> None:
    """Generate a random dot marker and register it."""
    parser = argparse.ArgumentParser(
        description="Generate a random dot marker"
    )
    _add_common_arguments(parser)
    parser.add_argument(
        '--name',
        '-n',
        required=True,
        help='Name of the new marker'
    )
    parser.add_argument(
        '--count',
        type=int,
        default=20,
        help='Number of dots (default: 20)'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed'
    )
    parser.add_argument(
        '--min-distance',
        type=float,
        default=0.3,
        help='Minimum distance between dots, marker spans [-2, 2] (default: 0.3)'
    )
    parser.add_argument(
        '--image',
        action='store_true',
        help='Also render the marker to a PNG image'
    )

    args = parser.parse_args(sys.argv[2:])
    _setup_logging(args.verbose)

    tracker = _load_tracker(args.config)

    required = tracker.config.llah.num_neighbors + 1
    if args.count < required:
        print(f"Error: There needs to be at least {required} dots, got {args.count}")
        sys.exit(1)

    rng = np.random.default_rng(args.seed)
    try:
        dots = random_dots(args.count, rng, min_distance=args.min_distance)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    points_path = tracker.config.data_directory / "markers" / f"{args.name}.csv"
    save_points(points_path, dots)
    try:
        marker = tracker.register_marker(args.name, points_path)
    except (ValueError, FileNotFoundError) as e:
        points_path.unlink()
        print(f"Error: {e}")
        sys.exit(1)

    print(f"✓ Generated marker '{marker.name}' with {marker.num_points} dots")
    print(f"  Points: {points_path}")

    if args.image:
        generator = UchiyaMarkerGenerator(tracker.config.render)
        image_path = tracker.config.data_directory / "images" / f"{args.name}.png"
        image_path.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(image_path), generator.render(dots))
        print(f"  Image: {image_path}")


def register_markers() -> None:
    """Register markers or show registered markers."""
    parser = argparse.ArgumentParser(
        description="Register markers"
    )
    _add_common_arguments(parser)
    parser.add_argument(
        '--marker',
        metavar='FILE',
        help='Points file (.csv or .json) of the marker to register'
    )
    parser.add_argument(
        '--name',
        help='Name for the marker (default: file name)'
    )
    parser.add_argument(
        '--list',
        action='store_true',
        help='List all markers'
    )
    parser.add_argument(
        '--stats',
        action='store_true',
        help='Show tracker statistics'
    )

    args = parser.parse_args(sys.argv[2:])
    _setup_logging(args.verbose)

    tracker = _load_tracker(args.config)

    if args.marker:
        points_path = Path(args.marker)
        name = args.name or points_path.stem
        try:
            marker = tracker.register_marker(name, points_path)
        except (ValueError, FileNotFoundError) as e:
            print(f"Error: {e}")
            sys.exit(1)
        print(f"✓ Registered marker '{marker.name}' with {marker.num_points} dots")

    elif args.list:
        print("Registered markers:")
        for name in tracker.list_markers():
            marker = tracker.config.markers[name]
            print(f"  - {name} ({marker.num_points} dots, {marker.points_path})")

    elif args.stats:
        if tracker.list_markers():
            tracker.build_index()
        stats = tracker.get_stats()
        print("\nUchiya Marker Tracker Statistics")
        print("=" * 60)
        print(f"Total markers: {stats['total_markers']}")
        print(f"Total dots: {stats['total_points']}")
        llah = stats['llah']
        print(f"\nLLAH: N={llah['num_neighbors']} M={llah['combination_size']} "
              f"{llah['invariant_type']} x{llah['num_discrete']}")
        index_stats = stats['index_stats']
        if index_stats:
            print(f"\nIndex:")
            print(f"  Features: {index_stats['total_features']}")
            print(f"  Buckets: {index_stats['buckets']}")
            print(f"  Largest bucket: {index_stats['largest_bucket']}")

    else:
        parser.print_help()


def recognize_markers() -> None:
    """Recognize markers from observed dots or an image."""
    parser = argparse.ArgumentParser(
        description="Recognize which markers observed dots belong to"
    )
    parser.add_argument(
        'path',
        help='Points file, or an image with --image'
    )
    _add_common_arguments(parser)
    parser.add_argument(
        '--image',
        '-i',
        action='store_true',
        help='Detect dots in an image instead of reading a points file'
    )
    parser.add_argument(
        '--min-matches',
        type=int,
        help='Minimum number of matched dots required'
    )

    args = parser.parse_args(sys.argv[2:])
    _setup_logging(args.verbose)

    tracker = _load_tracker(args.config)

    if not tracker.list_markers():
        print("Error: No markers registered.")
        sys.exit(1)

    try:
        if args.image:
            found = tracker.recognize_image(Path(args.path), args.min_matches)
        else:
            found = tracker.recognize_points(load_points(Path(args.path)), args.min_matches)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    if not found:
        print("\nNo markers recognized")
        return

    print(f"\nRecognized {len(found)} marker(s):")
    for name, matches, hits in found:
        print(f"  - {name}: {matches} dots matched ({hits} hits)")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Uchiya marker tracker - random dot marker recognition with LLAH",
        usage="""uchiya-tracker <command> [<args>]

Available commands:
   init       Initialize a new project
   generate   Generate and register a random dot marker
   register   Register markers or list them
   recognize  Recognize markers in a points file or image
"""
    )
    parser.add_argument('command', help='Command to run')

    args = parser.parse_args(sys.argv[1:2])

    commands = {
        'init': init_project,
        'generate': generate_marker,
        'register': register_markers,
        'recognize': recognize_markers,
    }

    if args.command not in commands:
        print(f"Error: Unknown command '{args.command}'")
        parser.print_help()
        sys.exit(1)

    commands[args.command]()


if __name__ == '__main__':
    main()
