import json
import sys

from shspy import interface
from shspy.Wrapper.workflow import SHSConfig


# --- Entry Point Functions (Matching pyproject.toml) ---

def run_shs():
    """ Entry point for the full SHS exploration (run_shs.py). """
    interface.main()


def run_directions():
    """ Entry point that only finds the minimum-energy directions around the input structure. """
    argv = sys.argv[1:]
    if "--directions_only" not in argv:
        argv.append("--directions_only")
    interface.main(argv)


def print_default_settings():
    """ Print the default "shs_settings" block as JSON. """
    print(json.dumps({"shs_settings": SHSConfig().to_dict()}, indent=4))
