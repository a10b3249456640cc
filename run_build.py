import sys

from weather_svg.cli import build_main


if __name__ == "__main__":
    sys.exit(build_main())
