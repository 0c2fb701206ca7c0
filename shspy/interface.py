"""
interface.py - Command-line front end of the SHS workflow
=========================================================

Usage
-----
Basic run with Gaussian (config.json and software_path.conf must exist):
    run_shs initial.xyz

Lennard-Jones cluster, four worker threads:
    run_shs ar7.xyz --calculator lj --n_workers 4

Only list the minimum-energy directions around the input structure:
    run_shs initial.xyz --directions_only

Restart from directions saved by an earlier search (mins_on_sphere):
    run_shs initial.xyz --directions_file shs_output/mins_on_sphere

config.json keys
----------------
An optional "shs_settings" block holds any field of SHSConfig:

    "shs_settings": {
        "delta_r"                    : 0.04,
        "conv_iter_limit"            : 10,
        "sphere_radius"              : 0.05,
        "path_cosine_threshold"      : 0.9,
        "direction_cosine_threshold" : 0.975,
        "n_workers"                  : 1,
        "directions_file"            : null,
        "rng_seed"                   : 42
    }

An optional "calculator" block selects and configures the evaluator:

    "calculator": {
        "type"         : "gaussian",   // or "lj"
        "theory"       : "hf/sto-3g",
        "mem"          : 1000,         // MB
        "charge"       : 0,
        "multiplicity" : 1,
        "timeout"      : null          // seconds
    }

Gaussian executables are read from software_path.conf lines
"gaussian::/path/to/g16" and "formchk::/path/to/formchk".

CLI arguments take precedence over the JSON blocks, which in turn take
precedence over the SHSConfig defaults.
"""

import argparse
import json
import logging
import os
import sys

from shspy.Calculator.gaussian_calculation_tools import GaussianCalculation
from shspy.Calculator.lj_calculation_tools import LennardJonesCalculation
from shspy.Wrapper.workflow import SHSConfig, SHSWorkflow
from shspy.fileio import read_chemcraft, read_software_path

logger = logging.getLogger(__name__)

CALCULATOR_TYPES = ("gaussian", "lj")
DEFAULT_CONFIG_FILE = "./config.json"


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = "INFO", log_file: str = "shs.log") -> None:
    """Configure console + file logging."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
    date_fmt = "%Y-%m-%d %H:%M:%S"
    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file, encoding="utf-8"),
    ]
    logging.basicConfig(level=numeric, format=fmt, datefmt=date_fmt, handlers=handlers)


# ---------------------------------------------------------------------------
# Configuration loading
# ---------------------------------------------------------------------------

def load_config(path: str) -> dict:
    """Load a JSON configuration file. A missing default file gives {}."""
    if not os.path.isfile(path):
        if path == DEFAULT_CONFIG_FILE:
            print("Info: ./config.json not found, using defaults")
            return {}
        print(f"Error: config file not found: {path}")
        sys.exit(1)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            config = json.load(fh)
        print(f"Config loaded: {path}")
        return config
    except json.JSONDecodeError as exc:
        print(f"Error: JSON parse error in {path}: {exc}")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run_shs",
        description="Scaled hypersphere search for equilibrium and transition structures.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "input_file",
        help="Initial equilibrium structure (xyz; atoms as symbols or atomic numbers, Angstrom).",
    )
    parser.add_argument(
        "-cfg", "--config_file",
        default=DEFAULT_CONFIG_FILE,
        help="Path to the JSON configuration file. Default: ./config.json",
    )
    parser.add_argument(
        "-osp", "--software_path_file",
        default="./software_path.conf",
        help="Path to software_path.conf. Default: ./software_path.conf",
    )
    parser.add_argument(
        "--calculator",
        choices=CALCULATOR_TYPES,
        default=None,
        help="Energy evaluator. Default: from the calculator block or gaussian.",
    )

    # ---- SHS settings ----
    parser.add_argument("--delta_r", type=float, default=None,
                        help="Radius increment of SHS paths. Default: 0.04.")
    parser.add_argument("--conv_iter_limit", type=int, default=None,
                        help="Step halvings before a path is abandoned. Default: 10.")
    parser.add_argument("--sphere_radius", type=float, default=None,
                        help="Radius of the minima elimination sphere. Default: 0.05.")
    parser.add_argument("--n_workers", type=int, default=None,
                        help="Threads walking SHS paths. Default: 1.")
    parser.add_argument("--nproc", type=int, default=None,
                        help="Processes per evaluator call during path walks. Default: 1.")
    parser.add_argument("--output_dir", default=None,
                        help="Root directory for all outputs. Default: shs_output.")
    parser.add_argument("--rng_seed", type=int, default=None,
                        help="Random seed for the random phase of minima elimination.")
    parser.add_argument("--directions_only", action="store_true",
                        help="Only find the minimum-energy directions around the input structure.")
    parser.add_argument("--directions_file", default=None,
                        help="Vector list of directions for the input structure instead of minima elimination.")

    # ---- Logging ----
    parser.add_argument(
        "--log_level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity. Default: INFO.",
    )
    parser.add_argument(
        "--log_file",
        default="shs.log",
        help="Log file path. Default: shs.log.",
    )

    return parser


# ---------------------------------------------------------------------------
# Config merging
# ---------------------------------------------------------------------------

def merge_config(args: argparse.Namespace, config: dict) -> dict:
    """
    Merge CLI arguments into config.

    Precedence (highest first):
        1. CLI arguments
        2. config["shs_settings"] / config["calculator"]
        3. built-in defaults

    The resolved settings are stored under config["_shs"] and
    config["_calculator"].
    """
    config["initial_mol_file"] = os.path.abspath(args.input_file)
    config["software_path_file_source"] = os.path.abspath(args.software_path_file)

    ss = dict(config.get("shs_settings", {}))
    cs = config.get("calculator", {})

    def resolve(cli_val, json_key: str, default, block=ss):
        """CLI > JSON block > default."""
        if cli_val is not None:
            return cli_val
        return block.get(json_key, default)

    defaults = SHSConfig()
    ss["delta_r"] = resolve(args.delta_r, "delta_r", defaults.delta_r)
    ss["conv_iter_limit"] = resolve(args.conv_iter_limit, "conv_iter_limit", defaults.conv_iter_limit)
    ss["sphere_radius"] = resolve(args.sphere_radius, "sphere_radius", defaults.sphere_radius)
    ss["n_workers"] = resolve(args.n_workers, "n_workers", defaults.n_workers)
    ss["nproc_path"] = resolve(args.nproc, "nproc_path", defaults.nproc_path)
    ss["rng_seed"] = resolve(args.rng_seed, "rng_seed", defaults.rng_seed)
    ss["directions_file"] = resolve(args.directions_file, "directions_file", defaults.directions_file)
    if ss["directions_file"]:
        ss["directions_file"] = os.path.abspath(ss["directions_file"])
    ss.pop("output_dir", None)

    config["_shs"] = {
        "settings":        SHSConfig.from_dict(ss).to_dict(),
        "output_dir":      resolve(args.output_dir, "output_dir", "shs_output",
                                   block=config.get("shs_settings", {})),
        "directions_only": args.directions_only,
    }
    config["_calculator"] = {
        "type":         resolve(args.calculator, "type", "gaussian", block=cs),
        "theory":       cs.get("theory", "hf/sto-3g"),
        "mem":          cs.get("mem", 1000),
        "charge":       cs.get("charge", 0),
        "multiplicity": cs.get("multiplicity", 1),
        "timeout":      cs.get("timeout", None),
    }
    if config["_calculator"]["type"] not in CALCULATOR_TYPES:
        print(f"Error: unknown calculator type: {config['_calculator']['type']}")
        sys.exit(1)

    return config


# ---------------------------------------------------------------------------
# Summary output
# ---------------------------------------------------------------------------

def print_config_summary(config: dict) -> None:
    """Print a human-readable summary of the run parameters."""
    s = config["_shs"]["settings"]
    c = config["_calculator"]
    sep = "=" * 62
    print(sep)
    print("  SHS workflow  -  run configuration")
    print(sep)
    print(f"  Input structure : {config['initial_mol_file']}")
    print(f"  Output directory: {config['_shs']['output_dir']}")
    print(f"  Calculator      : {c['type']}" + (f"  ({c['theory']})" if c["type"] == "gaussian" else ""))
    print(f"  Sphere radius   : {s['sphere_radius']}")
    print(f"  Delta r         : {s['delta_r']}")
    print(f"  Conv iter limit : {s['conv_iter_limit']}")
    print(f"  Worker threads  : {s['n_workers']}")
    print(f"  Max ES          : {s['max_es'] or 'unlimited'}")
    print(f"  RNG seed        : {s['rng_seed']}")
    print(f"  Directions only : {'yes' if config['_shs']['directions_only'] else 'no'}")
    if s["directions_file"]:
        print(f"  Directions file : {s['directions_file']}")
    print(sep)


# ---------------------------------------------------------------------------
# Assembly and launch
# ---------------------------------------------------------------------------

def build_evaluator(config: dict, charges):
    c = config["_calculator"]
    if c["type"] == "lj":
        return LennardJonesCalculation(charges)

    software_path = read_software_path(config["software_path_file_source"])
    return GaussianCalculation(
        charges,
        theory=c["theory"],
        mem=c["mem"],
        charge=c["charge"],
        multiplicity=c["multiplicity"],
        gaussian_command=software_path.get("gaussian", "g16"),
        formchk_command=software_path.get("formchk", "formchk"),
        timeout=c["timeout"],
    )


def launch_workflow(config: dict):
    """Build the evaluator and the workflow from the merged config and run it."""
    charges, structure = read_chemcraft(config["initial_mol_file"])
    evaluator = build_evaluator(config, charges)
    workflow = SHSWorkflow(
        evaluator,
        config=SHSConfig.from_dict(config["_shs"]["settings"]),
        output_dir=config["_shs"]["output_dir"],
    )
    if config["_shs"]["directions_only"]:
        return workflow.find_initial_directions(structure)

    result = workflow.run(structure)
    logger.info("Found %d equilibrium structures and %d transition states",
                len(result.equilibrium_structures), len(result.transition_states))
    return result


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv=None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file)
    log = logging.getLogger(__name__)

    if not os.path.isfile(args.input_file):
        log.error("Input file not found: %s", args.input_file)
        sys.exit(1)

    config = load_config(args.config_file)
    config = merge_config(args, config)
    print_config_summary(config)

    log.info("Configuration merged. Starting SHS workflow.")
    launch_workflow(config)
