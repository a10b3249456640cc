import sys

from weather_svg.cli import report_main


if __name__ == "__main__":
    sys.exit(report_main())
