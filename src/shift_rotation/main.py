"""
Main Entry Point for the Shift Rotation Engine

Command-line front end: prints the rotation table of a month and,
optionally, the next shift of a half-team.
"""

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from .config import load_settings
from .engine import ScheduleEngine
from .exceptions import ShiftRotationError
from .reporting import month_frame


def setup_logging(level: str = "INFO"):
    """Setup application logging"""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    log_file = log_dir / f"shift_rotation_{datetime.now().strftime('%Y%m%d')}.log"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def handle_exception(exc_type, exc_value, exc_traceback):
    """Global exception handler"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger = logging.getLogger(__name__)
    logger.error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


def parse_month(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shift-rotation",
                                     description="Print the crew rotation for a month")
    parser.add_argument("--settings", help="Path to the settings JSON file")
    parser.add_argument("--month", type=parse_month, help="Month to print (YYYY-MM), default current")
    parser.add_argument("--endpoint", help="Remote shift template configuration URL")
    parser.add_argument("--half-team", help="Also print the next shift of this half-team")
    return parser


class ShiftRotationApp:
    """Main application class"""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.logger = logging.getLogger(__name__)
        self.engine = None

    def initialize(self, settings) -> bool:
        """Initialize application components"""
        try:
            self.logger.info("Initializing Shift Rotation Engine")
            self.engine = ScheduleEngine(settings)
            result = self.engine.start()
            if not result.success:
                self.logger.error(f"Template configuration unavailable: {'; '.join(result.errors)}")
                return False
            if result.used_defaults:
                self.logger.warning("Running with default shift templates")
            return True

        except (ShiftRotationError, OSError) as e:
            self.logger.error(f"Failed to initialize application: {e}", exc_info=True)
            return False

    def run(self, settings) -> bool:
        """Print the requested month"""
        try:
            if not self.initialize(settings):
                return False

            target = self.args.month or date.today().replace(day=1)
            month = self.engine.get_month_for(target.year, target.month)
            print(f"{self.engine.pattern.name} - {target:%B %Y}")
            print(month_frame(month).to_string(index=False))

            if self.args.half_team:
                shift = self.engine.find_next_shift(self.args.half_team, date.today())
                if shift is None:
                    print(f"No upcoming shift for half-team {self.args.half_team.upper()}")
                else:
                    print(f"Next shift for {self.args.half_team.upper()}: {shift.date} {shift.name} "
                          f"({shift.template.formatted_start_time}-{shift.template.formatted_end_time})")
            return True

        except ShiftRotationError as e:
            self.logger.error(f"Application error: {e}", exc_info=True)
            return False

        finally:
            self.cleanup()

    def cleanup(self):
        """Cleanup application resources"""
        if self.engine:
            self.engine.close()


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = build_parser().parse_args(argv)

    sys.excepthook = handle_exception

    try:
        settings = load_settings(args.settings)
    except ShiftRotationError as e:
        print(f"Cannot load settings: {e}", file=sys.stderr)
        sys.exit(1)
    if args.endpoint:
        settings.remote_endpoint = args.endpoint

    logger = setup_logging(settings.log_level)
    logger.info("=" * 50)
    logger.info("Starting Shift Rotation Engine")
    logger.info("=" * 50)

    app = ShiftRotationApp(args)
    success = app.run(settings)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
